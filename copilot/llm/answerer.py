# copilot/llm/answerer.py

import re
from typing import Dict, List, Optional, Tuple

from copilot.llm.gpt_client import GPTClient

STRUCTURE_PROMPT = """You are a studio revenue advisor. Answer using ONLY this structure (use the exact headings and plain text, no markdown):

Summary:
[1-2 sentences]

Recommended action:
[Price change and/or schedule and/or promotion]

Expected impact:
[Fill rate and revenue directional estimate]

Confidence:
[High/Medium/Low and why]

Risks & fairness notes:
[Member perception + instructor morale]

Suggested member-facing message:
[2-3 sentences]"""

# heading -> response field
SECTIONS = [
    ("Summary", "summary"),
    ("Recommended action", "recommendedAction"),
    ("Expected impact", "expectedImpact"),
    ("Confidence", "confidenceReason"),
    ("Risks & fairness notes", "risksAndFairness"),
    ("Suggested member-facing message", "memberFacingMessage"),
]

_PRICE_RE = re.compile(r"price|pricing|discount|cost", re.IGNORECASE)
_SCHEDULE_RE = re.compile(r"schedule|slot|time|morning|evening|weekend", re.IGNORECASE)
_CONFIDENCE_RE = re.compile(r"Confidence:\s*(High|Medium|Low)", re.IGNORECASE)

_HEADINGS_ALT = "|".join(re.escape(h) for h, _ in SECTIONS)
_SECTION_RES = {
    key: re.compile(rf"{re.escape(h)}\s*:?\s*([\s\S]*?)(?={_HEADINGS_ALT}|$)", re.IGNORECASE)
    for h, key in SECTIONS
}


def build_context(context_docs: List[str]) -> str:
    if not context_docs:
        return "No matching session data."
    return "Relevant session data (use for evidence):\n" + "\n\n".join(context_docs)


def mock_response(query: str, context_docs: List[str]) -> Dict[str, str]:
    """Deterministic stand-in used when no model is configured."""
    has_price = bool(_PRICE_RE.search(query or ""))
    has_schedule = bool(_SCHEDULE_RE.search(query or ""))
    doc_summary = " | ".join(context_docs[:3])[:200]

    actions = []
    if has_price:
        actions.append("Consider a 10-15% trial discount on lunch/afternoon slots.")
    if has_schedule:
        actions.append("Shift 1-2 peak instructors to after-work slots.")
    if not actions:
        actions.append("Review pricing for low-fill slots and add a short promotion.")

    enough = len(context_docs) >= 4
    return {
        "summary": f"Based on {len(context_docs)} relevant sessions: {doc_summary}…",
        "recommendedAction": " ".join(actions),
        "expectedImpact": "Fill rate +5-10% on targeted slots; revenue +3-7% over 4 weeks.",
        "confidence": "Medium" if enough else "Low",
        "confidenceReason": (
            "Enough session history to spot patterns."
            if enough
            else "Limited matching data; recommend more history before big changes."
        ),
        "risksAndFairness": (
            "Members may notice price differences by slot; communicate as 'peak vs off-peak' "
            "to avoid perception of unfairness. Rotate star instructor slots to support morale."
        ),
        "memberFacingMessage": (
            "We're piloting off-peak pricing so you can try more classes at a lower price. "
            "Your favorite classes and instructors are unchanged; we've added more value at quieter times."
        ),
    }


def parse_structured_output(text: str) -> Dict[str, str]:
    """Split model output on the known headings into response fields."""
    text = text or ""
    sections: Dict[str, str] = {}
    for _, key in SECTIONS:
        m = _SECTION_RES[key].search(text)
        if m:
            sections[key] = m.group(1).strip()

    conf = _CONFIDENCE_RE.search(text)
    return {
        "summary": sections.get("summary") or text[:300],
        "recommendedAction": sections.get("recommendedAction", ""),
        "expectedImpact": sections.get("expectedImpact", ""),
        "confidence": conf.group(1).capitalize() if conf else "Medium",
        "confidenceReason": sections.get("confidenceReason") or (conf.group(0) if conf else ""),
        "risksAndFairness": sections.get("risksAndFairness", ""),
        "memberFacingMessage": sections.get("memberFacingMessage", ""),
    }


def generate_answer(
    message: str,
    context_docs: List[str],
    max_tokens: int = 1024,
    client: Optional[GPTClient] = None,
) -> Tuple[Dict[str, str], dict]:
    """
    Produce the structured copilot response for ``message``.

    Uses the OpenAI client when it is enabled, the heuristic mock otherwise.
    """
    client = client or GPTClient()
    if not client.enabled:
        return mock_response(message, context_docs), {"llm": "mock"}

    system = STRUCTURE_PROMPT + "\n\n" + build_context(context_docs)
    text, meta = client.complete(system, message, max_tokens=max_tokens)
    return parse_structured_output(text), meta
