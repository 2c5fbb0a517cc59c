"""Structured risk assessment of a field report.

The OpenAI Responses API is called directly with `requests` (same approach
as the transcription adapter). Whatever comes back goes through
``parse_assessment``: unwrap code fences and prose, parse JSON, validate, and
derive priority/urgency from the risk score. Any failure along the way yields
``FALLBACK_ASSESSMENT`` instead of an exception, so analysis never fails the
pipeline.
"""

import json
import logging
import random
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import requests
from flask import current_app, has_app_context

from ..errors import AnalysisParseError
from .scoring import band_for_risk, coerce_risk_score, heuristic_assessment, normalize_urgency

_module_logger = logging.getLogger(__name__)


def _log(level, msg, *args):
    logger = current_app.logger if has_app_context() else _module_logger
    getattr(logger, level)(msg, *args)


@dataclass(frozen=True)
class Assessment:
    chief_complaint: str
    vital_signs: str
    symptoms: str
    risk_score: int
    priority_level: int
    urgency_level: str
    recommended_actions: str
    critical_info: str
    summary: str

    def to_fields(self) -> Dict[str, Any]:
        return asdict(self)


FALLBACK_ASSESSMENT = Assessment(
    chief_complaint="Unable to analyze",
    vital_signs="Not available",
    symptoms="Not specified",
    risk_score=5,
    priority_level=3,
    urgency_level="moderate",
    recommended_actions="Manual review required",
    critical_info="AI analysis failed",
    summary="Unable to generate medical summary",
)


@dataclass(frozen=True)
class AnalysisResult:
    assessment: Assessment
    ok: bool = True
    source: str = "model"
    reason: Optional[str] = None

    @classmethod
    def fallback(cls, reason):
        return cls(FALLBACK_ASSESSMENT, ok=False, source="fallback", reason=reason)


# text fields and the value used when the model leaves one out
TEXT_DEFAULTS = {
    "chief_complaint": "Not specified",
    "vital_signs": "Not recorded",
    "symptoms": "Not specified",
    "recommended_actions": "Standard care",
    "critical_info": "None",
    "summary": "Summary not available",
}

# alternative keys the model has been seen to use
FIELD_ALIASES = {
    "summary": ("medical_summary", "narrative_summary"),
    "vital_signs": ("vitals",),
}


def build_prompt(transcript: str, context: str) -> str:
    return f"""You are an emergency medicine specialist. Analyze this EMT field report (audio transcription plus typed patient information) and produce a medical assessment.

AUDIO TRANSCRIPTION: {transcript or ''}

ADDITIONAL PATIENT INFORMATION: {context or ''}

Use BOTH the transcription and the typed patient information.

Return ONLY this JSON object (no other text):
{{
  "chief_complaint": "Brief description of the patient's main complaint",
  "vital_signs": "Any vital signs mentioned (BP, HR, RR, Temp, O2 Sat, etc.)",
  "symptoms": "Key symptoms observed or reported",
  "risk_score": 5,
  "priority_level": 3,
  "urgency_level": "moderate",
  "recommended_actions": "Specific medical actions recommended",
  "critical_info": "Critical information for doctors",
  "medical_summary": "Comprehensive medical summary"
}}

RISK SCORING (integer 0-10):
- 9-10: multiple severe traumas, cardiac arrest, severe bleeding, unconscious or unresponsive
- 7-8: single severe trauma, severe head injury, chest trauma
- 5-6: moderate trauma (broken bones, moderate injuries), stable but injured
- 3-4: minor injuries (cuts, bruises, minor fractures), stable with minor complaints
- 1-2: very minor issues (heartburn, minor cuts), routine care

PRIORITY / URGENCY:
- risk 9-10: priority 1, "critical"
- risk 7-8: priority 2, "urgent"
- risk 5-6: priority 3, "moderate"
- risk 3-4: priority 4, "low"
- risk 1-2: priority 5, "routine"

EXAMPLES:
- "Patient dying, fell from bridge, then run over by car" = risk 9-10
- "Major car accident, multiple injuries, unconscious" = risk 7-8
- "Car accident, broken arm, stable vital signs" = risk 5-6
- "Minor car accident, cuts and bruises" = risk 3-4
- "Heartburn, feeling fine" = risk 1-2

Return ONLY the JSON object."""


_FENCE = re.compile(r"```[A-Za-z]*[ \t]*\n?(.*?)```", re.DOTALL)


def unwrap_json_text(raw) -> str:
    """Strip code fences and surrounding prose, returning the JSON object text."""
    if raw is None:
        raise AnalysisParseError("empty response")
    text = str(raw).strip()
    m = _FENCE.search(text)
    if m:
        text = m.group(1).strip()
    # prose around the object may itself contain braces
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, end = decoder.raw_decode(text, start)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return text[start:end]
        start = text.find("{", start + 1)
    raise AnalysisParseError("no JSON object in response")


def _render_text(value) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        parts = [_render_text(v) for v in value]
        return "; ".join(p for p in parts if p) or None
    if isinstance(value, dict):
        parts = [f"{k}: {_render_text(v)}" for k, v in value.items() if _render_text(v)]
        return ", ".join(parts) or None
    return str(value)


def validate_assessment(data) -> Assessment:
    if not isinstance(data, dict):
        raise AnalysisParseError(f"expected a JSON object, got {type(data).__name__}")
    try:
        risk = coerce_risk_score(data.get("risk_score"))
    except ValueError as e:
        raise AnalysisParseError(str(e)) from e
    priority, urgency = band_for_risk(risk)
    claimed_priority = data.get("priority_level")
    claimed_urgency = normalize_urgency(data.get("urgency_level"))
    if (claimed_priority is not None and claimed_priority != priority) or \
            (claimed_urgency is not None and claimed_urgency != urgency):
        _log("info", "Model priority/urgency %r/%r disagree with risk %s; using %s/%s",
             claimed_priority, data.get("urgency_level"), risk, priority, urgency)

    fields = {}
    for name, default in TEXT_DEFAULTS.items():
        value = None
        for key in (name,) + FIELD_ALIASES.get(name, ()):
            value = _render_text(data.get(key))
            if value:
                break
        fields[name] = value or default
    return Assessment(risk_score=risk, priority_level=priority, urgency_level=urgency, **fields)


def parse_assessment(raw) -> AnalysisResult:
    """Unwrap-then-validate; returns the fallback result rather than raising."""
    try:
        data = json.loads(unwrap_json_text(raw))
        return AnalysisResult(validate_assessment(data))
    except (AnalysisParseError, ValueError, TypeError, RecursionError) as e:
        _log("warning", "Malformed analysis response, using fallback assessment: %s", e)
        return AnalysisResult.fallback(str(e))


def extract_response_text(jr) -> str:
    """Text from a Responses API payload (or a chat completion, for compatible gateways)."""
    if not isinstance(jr, dict):
        return ""
    text = jr.get("output_text") or ""
    if text:
        return text
    parts = []
    for item in jr.get("output") or []:
        if isinstance(item, dict):
            for c in item.get("content") or []:
                if isinstance(c, dict) and "text" in c:
                    parts.append(c["text"])
                elif isinstance(c, str):
                    parts.append(c)
        elif isinstance(item, str):
            parts.append(item)
    if not parts:
        for choice in jr.get("choices") or []:
            content = ((choice or {}).get("message") or {}).get("content")
            if content:
                parts.append(content)
    return "\n".join(parts)


def _retry_after(header, default):
    if not header:
        return default
    try:
        return float(header)
    except ValueError:
        # HTTP-date form; not worth parsing
        return default


class Analyzer:
    name = "base"

    def analyze(self, transcript: str, context: str) -> AnalysisResult:
        raise NotImplementedError


class OpenAIAnalyzer(Analyzer):
    name = "openai"
    url = "https://api.openai.com/v1/responses"

    def __init__(self, api_key, model="gpt-4o-mini", max_attempts=3, timeout=60, http=None, sleep=time.sleep):
        self.api_key = api_key
        self.model = model
        self.max_attempts = max(1, int(max_attempts))
        self.timeout = timeout
        self.http = http or requests
        self.sleep = sleep

    def analyze(self, transcript: str, context: str) -> AnalysisResult:
        if not self.api_key:
            _log("warning", "OPENAI_API_KEY not configured; using fallback assessment")
            return AnalysisResult.fallback("OPENAI_API_KEY is not configured")
        try:
            raw = self._request(build_prompt(transcript, context))
        except Exception as e:
            _log("exception", "OpenAI analysis request failed, using fallback assessment")
            return AnalysisResult.fallback(f"analysis request failed: {e}")
        if raw is None:
            return AnalysisResult.fallback("no analysis response after retries")
        _log("debug", "Raw analysis response: %s", raw[:2000])
        return parse_assessment(raw)

    def _pause(self, attempt, wait):
        if attempt < self.max_attempts:
            self.sleep(wait + random.uniform(0, 0.5))

    def _request(self, prompt) -> Optional[str]:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        body = {
            "model": self.model,
            "input": prompt,
            "max_output_tokens": 1000,
            "temperature": 0.3,
        }
        # retry rate limits, 5xx and network errors with exponential backoff;
        # honor Retry-After; give up at once on insufficient quota
        backoff = 1.0
        for attempt in range(1, self.max_attempts + 1):
            try:
                r = self.http.post(self.url, headers=headers, json=body, timeout=self.timeout)
            except requests.exceptions.RequestException:
                _log("warning", "OpenAI network error, attempt %s/%s", attempt, self.max_attempts)
                self._pause(attempt, backoff)
                backoff *= 2
                continue

            if r.status_code == 429 or 500 <= r.status_code < 600:
                body_text = r.text or ""
                if r.status_code == 429 and "insufficient_quota" in body_text:
                    _log("error", "OpenAI 429 indicates insufficient quota; body=%s", body_text[:1000])
                    return None
                wait = _retry_after(r.headers.get("Retry-After"), backoff)
                _log("warning", "OpenAI request returned %s, attempt %s/%s, retrying in %ss",
                     r.status_code, attempt, self.max_attempts, wait)
                self._pause(attempt, wait)
                backoff *= 2
                continue

            r.raise_for_status()
            return extract_response_text(r.json())
        return None


class HeuristicAnalyzer(Analyzer):
    """Offline keyword triage for deployments without a language model."""
    name = "heuristic"

    def analyze(self, transcript: str, context: str) -> AnalysisResult:
        return AnalysisResult(Assessment(**heuristic_assessment(transcript, context)), source="heuristic")


def build_analyzer(config) -> Analyzer:
    backend = (config.get("ANALYSIS_BACKEND") or "openai").lower()
    if backend == "heuristic":
        return HeuristicAnalyzer()
    if backend == "openai":
        return OpenAIAnalyzer(
            config.get("OPENAI_API_KEY"),
            model=config.get("ANALYSIS_MODEL", "gpt-4o-mini"),
            max_attempts=config.get("ANALYSIS_MAX_ATTEMPTS", 3),
            timeout=config.get("EXTERNAL_TIMEOUT_SEC", 60),
        )
    raise ValueError(f"unknown ANALYSIS_BACKEND {backend!r}")
