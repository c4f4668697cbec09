# copilot/ratelimit.py
"""
In-memory per-client rate limiter for demo mode.

Each client id gets a bucket with two sliding windows (minute / hour) of
request timestamps. State lives in this process only and is lost on restart;
with several server instances each one enforces its own windows.
"""

import logging
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Mapping, Optional

log = logging.getLogger(__name__)

ONE_MINUTE = 60.0
ONE_HOUR = 3600.0
UNKNOWN_CLIENT = "unknown"

# Sweep empty buckets every N checks.
SWEEP_EVERY = 1000


class ConfigError(ValueError):
    """Rate limits configured with values that can never make sense."""


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    window: Optional[str] = None  # "minute" | "hour" when rejected
    retry_after: float = 0.0


@dataclass
class _Bucket:
    minute: Deque[float] = field(default_factory=deque)
    hour: Deque[float] = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)


def _purge(timestamps: Deque[float], window: float, now: float) -> None:
    # Timestamps are appended in order, so pop from the front.
    cutoff = now - window
    while timestamps and timestamps[0] < cutoff:
        timestamps.popleft()


def _validate_limit(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {value}")
    return value


class RateLimiter:
    """
    Sliding-window limiter keyed by client id.

    Parameters
    ----------
    clock:
        Returns the current time in seconds. Defaults to ``time.monotonic``;
        tests pass a fake clock.
    minute_window, hour_window:
        Window lengths in seconds.
    max_buckets:
        Optional cap on tracked clients. When full, the least recently seen
        client is evicted before a new bucket is created.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        minute_window: float = ONE_MINUTE,
        hour_window: float = ONE_HOUR,
        max_buckets: Optional[int] = None,
    ):
        if max_buckets is not None and max_buckets < 1:
            raise ConfigError(f"max_buckets must be >= 1, got {max_buckets}")
        self.clock = clock
        self.minute_window = float(minute_window)
        self.hour_window = float(hour_window)
        self.max_buckets = max_buckets
        # Registry lock guards the dict only; each bucket has its own lock.
        self._lock = threading.Lock()
        self._buckets: "OrderedDict[str, _Bucket]" = OrderedDict()
        self._checks = 0

    def _bucket(self, client_id: str) -> _Bucket:
        with self._lock:
            self._checks += 1
            bucket = self._buckets.get(client_id)
            if bucket is None:
                if self.max_buckets is not None and len(self._buckets) >= self.max_buckets:
                    evicted, _ = self._buckets.popitem(last=False)
                    log.debug("rate limiter evicted bucket for %s", evicted)
                bucket = _Bucket()
                self._buckets[client_id] = bucket
            else:
                self._buckets.move_to_end(client_id)
            due_sweep = self._checks % SWEEP_EVERY == 0
        if due_sweep:
            self.sweep()
        return bucket

    def check(self, client_id: str, max_per_minute: int, max_per_hour: int) -> RateLimitResult:
        """
        Admit or reject one request for ``client_id``.

        Only admitted requests are recorded; a rejected probe does not count
        against later windows.
        """
        _validate_limit("max_per_minute", max_per_minute)
        _validate_limit("max_per_hour", max_per_hour)

        while True:
            bucket = self._bucket(client_id)
            with bucket.lock:
                with self._lock:
                    live = self._buckets.get(client_id) is bucket
                if not live:
                    # Swept or evicted between lookup and lock; fetch again.
                    continue

                now = self.clock()
                _purge(bucket.minute, self.minute_window, now)
                _purge(bucket.hour, self.hour_window, now)

                if len(bucket.minute) >= max_per_minute:
                    wait = self._retry_after(bucket.minute, self.minute_window, now)
                    return RateLimitResult(False, "minute", wait)
                if len(bucket.hour) >= max_per_hour:
                    wait = self._retry_after(bucket.hour, self.hour_window, now)
                    return RateLimitResult(False, "hour", wait)

                bucket.minute.append(now)
                bucket.hour.append(now)
                return RateLimitResult(True)

    @staticmethod
    def _retry_after(timestamps: Deque[float], window: float, now: float) -> float:
        if not timestamps:
            # Limit of 0: nothing recorded, wait a full window.
            return window
        return max(0.0, timestamps[0] + window - now)

    def sweep(self) -> int:
        """Drop buckets whose windows are both empty. Returns how many went."""
        now = self.clock()
        with self._lock:
            items = list(self._buckets.items())
        dropped = 0
        for client_id, bucket in items:
            with bucket.lock:
                _purge(bucket.minute, self.minute_window, now)
                _purge(bucket.hour, self.hour_window, now)
                if bucket.minute or bucket.hour:
                    continue
                with self._lock:
                    if self._buckets.get(client_id) is bucket:
                        del self._buckets[client_id]
                        dropped += 1
        if dropped:
            log.debug("rate limiter swept %d idle buckets", dropped)
        return dropped

    def size(self) -> int:
        """Number of tracked client buckets."""
        with self._lock:
            return len(self._buckets)


def _header(headers: Mapping[str, str], name: str) -> str:
    val = headers.get(name)
    if val is None:
        lname = name.lower()
        for k, v in headers.items():
            if str(k).lower() == lname:
                val = v
                break
    return (val or "").strip()


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """
    Derive a per-caller key from forwarding headers.

    Prefers the first ``x-forwarded-for`` entry, then ``x-real-ip``. Callers
    without either share the ``"unknown"`` bucket.
    """
    xff = _header(headers or {}, "x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    real_ip = _header(headers or {}, "x-real-ip")
    if real_ip:
        return real_ip
    return UNKNOWN_CLIENT


_default_limiter = RateLimiter()


def check_rate_limit(
    client_id: str,
    max_per_minute: int,
    max_per_hour: int,
    limiter: Optional[RateLimiter] = None,
) -> RateLimitResult:
    """Check against ``limiter`` or the process-wide default instance."""
    return (limiter or _default_limiter).check(client_id, max_per_minute, max_per_hour)
