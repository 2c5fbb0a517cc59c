"""Fixed triage policy: risk score -> (priority, urgency).

| risk  | priority | urgency  |
|-------|----------|----------|
| 9-10  | 1        | critical |
| 7-8   | 2        | urgent   |
| 5-6   | 3        | moderate |
| 3-4   | 4        | low      |
| 0-2   | 5        | routine  |
"""

import re

URGENCY_LEVELS = ("critical", "urgent", "moderate", "low", "routine")

URGENCY_ALIASES = {
    "high": "urgent",
    "medium": "moderate",
}

_BANDS = (
    # (lowest risk in band, priority, urgency)
    (9, 1, "critical"),
    (7, 2, "urgent"),
    (5, 3, "moderate"),
    (3, 4, "low"),
    (0, 5, "routine"),
)


def band_for_risk(score: int):
    """Return ``(priority_level, urgency_level)`` for a risk score in 0-10."""
    score = coerce_risk_score(score)
    for low, priority, urgency in _BANDS:
        if score >= low:
            return priority, urgency
    raise AssertionError("unreachable: bands cover 0-10")


def coerce_risk_score(value) -> int:
    """Accept ints, integral floats and numeric strings in 0-10."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"risk score must be a number, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("risk score is empty")
        value = float(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"risk score must be an integer, got {value!r}")
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"risk score must be a number, got {value!r}")
    if value < 0 or value > 10:
        raise ValueError(f"risk score out of range 0-10: {value}")
    return value


def normalize_urgency(label):
    if label is None:
        return None
    key = str(label).strip().lower()
    key = URGENCY_ALIASES.get(key, key)
    return key if key in URGENCY_LEVELS else None


def triage_sort_key(item):
    """Sort key for (risk desc, priority asc, recency desc).

    ``item`` needs ``risk_score``, ``priority_level`` and ``created_at``;
    unscored items sort last.
    """
    risk = item.risk_score if item.risk_score is not None else -1
    priority = item.priority_level if item.priority_level is not None else 99
    created = item.created_at.timestamp() if item.created_at is not None else float("-inf")
    return (-risk, priority, -created)


# Keyword bands mirror the risk guidelines given to the language model.
_KEYWORDS = (
    (9, (
        "unconscious", "unresponsive", "cardiac arrest", "not breathing", "no pulse",
        "severe bleeding", "multiple trauma", "multiple severe", "fell from", "run over",
        "dying", "gunshot", "stab wound",
    )),
    (7, (
        "severe head injury", "head injury", "chest trauma", "chest pain", "major accident",
        "major car accident", "multiple injuries", "difficulty breathing", "stroke",
        "seizure", "overdose",
    )),
    (5, (
        "broken", "fracture", "fractured", "dislocated", "dislocation", "moderate",
        "deep laceration", "burn", "burns",
    )),
    (3, (
        "minor", "cut", "cuts", "bruise", "bruises", "bruising", "sprain", "scrape",
        "fender bender", "small",
    )),
    (1, (
        "heartburn", "feeling fine", "routine", "mild", "no injuries",
    )),
)

_PATTERNS = tuple(
    (low, [(kw, re.compile(r"\b" + re.escape(kw) + r"\b", re.IGNORECASE)) for kw in words])
    for low, words in _KEYWORDS
)


def heuristic_assessment(transcript: str, context: str = "") -> dict:
    """Keyword triage used when no language model is configured.

    The highest band with any hit wins; two or more hits in that band
    select the upper score of the band.
    """
    text = " ".join(t for t in (transcript or "", context or "") if t)
    risk = 5
    hits = []
    for low, patterns in _PATTERNS:
        hits = [kw for kw, rx in patterns if rx.search(text)]
        if hits:
            risk = low + 1 if len(hits) >= 2 else low
            break
    priority, urgency = band_for_risk(risk)

    first = re.split(r"[.!?\n]", text.strip(), maxsplit=1)[0].strip() if text.strip() else ""
    return {
        "chief_complaint": first[:120] or "Not specified",
        "vital_signs": "Not recorded",
        "symptoms": ", ".join(hits) if hits else "Not specified",
        "risk_score": risk,
        "priority_level": priority,
        "urgency_level": urgency,
        "recommended_actions": "Manual review required",
        "critical_info": ", ".join(hits) if urgency == "critical" else "None",
        "summary": (
            f"Keyword triage without language model: risk {risk}/10"
            + (f" ({', '.join(hits)})" if hits else "")
        ),
    }
