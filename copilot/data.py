# copilot/data.py
"""
In-memory class-session history for the studio copilot.

There is no database: a seeded generator produces six months of sessions
and ``regenerate`` swaps in a fresh list. Sessions are plain dicts using the
camelCase keys the dashboard expects.
"""

import datetime
import logging
import math
import threading
import time
from collections import defaultdict
from typing import Dict, List, Optional

log = logging.getLogger(__name__)

INSTRUCTORS = [
    {"id": "ins-1", "name": "Jordan Lee", "popularity": 1.0},  # star
    {"id": "ins-2", "name": "Sam Rivera", "popularity": 0.85},
    {"id": "ins-3", "name": "Alex Chen", "popularity": 0.7},
    {"id": "ins-4", "name": "Morgan Taylor", "popularity": 0.55},
    {"id": "ins-5", "name": "Casey Kim", "popularity": 0.4},
    {"id": "ins-6", "name": "Riley Jones", "popularity": 0.35},
]

CLASS_TYPES = ["yoga", "pilates", "barre", "cycle"]
TIME_SLOTS = ["morning", "lunch", "afternoon", "afterwork", "evening", "weekend"]

# Demand multiplier by slot (after-work and morning higher)
SLOT_DEMAND = {
    "morning": 1.15,
    "lunch": 0.5,
    "afternoon": 0.75,
    "afterwork": 1.35,
    "evening": 1.0,
    "weekend": 1.1,
}

BASE_PRICE = {"cycle": 28, "barre": 24}
DEFAULT_BASE_PRICE = 22
MIDDAY_DISCOUNT = 0.85


def seeded_random(seed: float) -> float:
    s = math.sin(seed) * 10000
    return s - math.floor(s)


def _pick(items: List, seed: float):
    return items[int(math.floor(seeded_random(seed) * len(items)))]


def _months_back(day: datetime.date, months: int) -> datetime.date:
    """Same day-of-month ``months`` earlier, clamped to the month's end."""
    y, m = divmod(day.year * 12 + (day.month - 1) - months, 12)
    m += 1
    for d in (day.day, 30, 29, 28):
        try:
            return datetime.date(y, m, d)
        except ValueError:
            continue
    return datetime.date(y, m, 28)


def _round(x: float) -> int:
    # Half-up, matching how the dashboard rounds.
    return int(math.floor(x + 0.5))


def generate_dummy_data(seed: float, today: Optional[datetime.date] = None) -> List[Dict]:
    """Generate 6 months of class-session history with believable patterns."""
    end = today or datetime.date.today()
    start = _months_back(end, 6)
    sessions: List[Dict] = []
    sid = 0
    r = seed

    day = start
    while day <= end:
        is_weekend = day.weekday() >= 5
        # Slight seasonality: higher in latter months
        months_from_start = (day - start).days / 30.0
        seasonality = 0.9 + 0.2 * min(months_from_start / 6, 1)

        for slot in TIME_SLOTS:
            is_midday = slot in ("lunch", "afternoon")
            discount = MIDDAY_DISCOUNT if is_midday else 1.0

            instructor = _pick(INSTRUCTORS, r); r += 1
            class_type = _pick(CLASS_TYPES, r); r += 1
            base_price = BASE_PRICE.get(class_type, DEFAULT_BASE_PRICE)
            actual_price = _round(base_price * discount * (0.95 + seeded_random(r) * 0.1)); r += 1
            capacity = 20 + int(math.floor(seeded_random(r) * 16)); r += 1

            demand = instructor["popularity"] * SLOT_DEMAND[slot] * seasonality * (1.05 if is_weekend else 1)
            fill_rate = min(0.98, 0.3 + demand * 0.5 + seeded_random(r) * 0.2); r += 1
            if instructor["popularity"] >= 0.95:
                fill_rate = min(0.99, fill_rate + 0.15)
            if is_midday and discount < 1:
                fill_rate = min(0.85, fill_rate + 0.1)

            booked = _round(capacity * fill_rate)
            attended = _round(booked * (0.88 + seeded_random(r) * 0.1)); r += 1
            lead_time = _round(2 + seeded_random(r) * 12); r += 1

            sid += 1
            sessions.append({
                "id": f"s-{sid}",
                "date": day.isoformat(),
                "instructorId": instructor["id"],
                "instructorName": instructor["name"],
                "classType": class_type,
                "timeSlot": slot,
                "basePrice": base_price,
                "actualPrice": actual_price,
                "capacity": capacity,
                "booked": booked,
                "attended": attended,
                "cancellations": booked - attended,
                "revenue": attended * actual_price,
                "bookingLeadTimeDays": lead_time,
            })
        day += datetime.timedelta(days=1)

    return sessions


def _signed(value: float, positive: bool, suffix: str) -> str:
    txt = f"{value:.1f}{suffix}"
    return f"+{txt}" if positive else txt


def compute_changelog(sessions: List[Dict], today: Optional[datetime.date] = None) -> List[Dict]:
    """'What happened last 4 weeks' compared with the 4 weeks before."""
    now = today or datetime.date.today()
    recent_start = (now - datetime.timedelta(days=28)).isoformat()
    prior_start = (now - datetime.timedelta(days=56)).isoformat()

    recent = [s for s in sessions if s["date"] >= recent_start]
    older = [s for s in sessions if prior_start <= s["date"] < recent_start]

    def total(rows: List[Dict], key: str) -> float:
        return sum(float(s.get(key) or 0) for s in rows)

    recent_rev, older_rev = total(recent, "revenue"), total(older, "revenue")
    recent_att, older_att = total(recent, "attended"), total(older, "attended")
    recent_cap, older_cap = total(recent, "capacity"), total(older, "capacity")
    recent_fill = total(recent, "booked") / recent_cap * 100 if recent_cap else 0.0
    older_fill = total(older, "booked") / older_cap * 100 if older_cap else 0.0

    if older_rev:
        rev_change = _signed((recent_rev - older_rev) / older_rev * 100, recent_rev > older_rev, "%")
    else:
        rev_change = "n/a"

    entries = [
        {
            "period": "Last 4 weeks",
            "metric": "Revenue",
            "change": rev_change,
            "detail": f"${int(recent_rev):,} vs prior 4w",
        },
        {
            "period": "Last 4 weeks",
            "metric": "Fill rate",
            "change": _signed(recent_fill - older_fill, recent_fill >= older_fill, "pp"),
            "detail": f"{recent_fill:.1f}% vs {older_fill:.1f}%",
        },
        {
            "period": "Last 4 weeks",
            "metric": "Attendance",
            "change": "Up" if recent_att >= older_att else "Down",
            "detail": f"{int(recent_att)} attended",
        },
    ]

    by_instructor: Dict[str, float] = defaultdict(float)
    for s in recent:
        by_instructor[s["instructorName"]] += s["revenue"]
    if by_instructor:
        name, rev = max(by_instructor.items(), key=lambda kv: kv[1])
        entries.append({
            "period": "Last 4 weeks",
            "metric": "Top instructor (revenue)",
            "change": name,
            "detail": f"${_round(rev):,}",
        })
    return entries


class SessionStore:
    """Holds the current session list; ``regenerate`` replaces it wholesale."""

    def __init__(self, seed: float = 42, today: Optional[datetime.date] = None):
        self._lock = threading.Lock()
        self._today = today
        self._sessions: List[Dict] = generate_dummy_data(seed, today)

    def get_sessions(self) -> List[Dict]:
        with self._lock:
            return self._sessions

    def regenerate(self, seed: Optional[float] = None) -> List[Dict]:
        if seed is None:
            seed = int(time.time() * 1000)
        fresh = generate_dummy_data(seed, self._today)
        with self._lock:
            self._sessions = fresh
        log.info("regenerated %d sessions (seed=%s)", len(fresh), seed)
        return fresh

    def get_changelog(self) -> List[Dict]:
        return compute_changelog(self.get_sessions(), self._today)
