import json
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
import requests

from conftest import FakeHttp, FakeResponse
from fieldtriage.services.analysis import (
    FALLBACK_ASSESSMENT,
    HeuristicAnalyzer,
    OpenAIAnalyzer,
    build_analyzer,
    extract_response_text,
    parse_assessment,
    unwrap_json_text,
)

GOOD = {
    "chief_complaint": "Fall from ladder",
    "vital_signs": "BP 90/60, HR 120",
    "symptoms": "Unresponsive, scalp laceration",
    "risk_score": 9,
    "priority_level": 1,
    "urgency_level": "critical",
    "recommended_actions": "Secure airway, immobilize spine",
    "critical_info": "GCS 6",
    "medical_summary": "Unresponsive adult after a 4m fall.",
}


def test_parse_plain_json():
    result = parse_assessment(json.dumps(GOOD))
    assert result.ok
    a = result.assessment
    assert (a.risk_score, a.priority_level, a.urgency_level) == (9, 1, "critical")
    assert a.summary == "Unresponsive adult after a 4m fall."


def test_parse_fenced_json_with_prose():
    raw = "Here is the assessment:\n```json\n" + json.dumps(GOOD) + "\n```\nStay safe."
    result = parse_assessment(raw)
    assert result.ok
    assert result.assessment == parse_assessment(json.dumps(GOOD)).assessment
    bare_fence = parse_assessment("```\n" + json.dumps(GOOD) + "\n```")
    assert bare_fence.assessment == result.assessment


@pytest.mark.parametrize("raw", [
    json.dumps(GOOD) + "\nNote: fields in {curly braces} are estimates.",
    "Assessment for {patient}:\n" + json.dumps(GOOD),
    "Assessment for {patient}:\n" + json.dumps(GOOD) + "\n{end of report}",
])
def test_prose_with_braces_around_json(raw):
    result = parse_assessment(raw)
    assert result.ok
    assert result.assessment == parse_assessment(json.dumps(GOOD)).assessment


def test_unwrap_rejects_text_without_object():
    with pytest.raises(ValueError):
        unwrap_json_text("I cannot help with that")


def test_priority_and_urgency_follow_risk_not_model():
    data = dict(GOOD, risk_score=4, priority_level=1, urgency_level="critical")
    a = parse_assessment(json.dumps(data)).assessment
    assert (a.risk_score, a.priority_level, a.urgency_level) == (4, 4, "low")


def test_missing_text_fields_get_defaults_and_lists_are_joined():
    a = parse_assessment(json.dumps({"risk_score": "6", "symptoms": ["nausea", "dizziness"]})).assessment
    assert a.risk_score == 6
    assert a.symptoms == "nausea; dizziness"
    assert a.chief_complaint == "Not specified"
    assert a.summary == "Summary not available"


@pytest.mark.parametrize("raw", [
    "",
    None,
    "not json at all",
    "{broken json",
    "[1, 2, 3]",
    json.dumps(dict(GOOD, risk_score=42)),
    json.dumps(dict(GOOD, risk_score="very high")),
    json.dumps({k: v for k, v in GOOD.items() if k != "risk_score"}),
])
def test_malformed_responses_yield_fallback(raw):
    result = parse_assessment(raw)
    assert not result.ok
    assert result.source == "fallback"
    assert result.assessment == FALLBACK_ASSESSMENT
    assert result.assessment.risk_score == 5
    assert result.assessment.urgency_level == "moderate"


def test_extract_response_text_shapes():
    assert extract_response_text({"output_text": "a"}) == "a"
    nested = {"output": [{"content": [{"type": "output_text", "text": "b"}]}]}
    assert extract_response_text(nested) == "b"
    chat = {"choices": [{"message": {"content": "c"}}]}
    assert extract_response_text(chat) == "c"
    assert extract_response_text(None) == ""


def test_openai_analyzer_without_key_falls_back():
    http = FakeHttp()
    result = OpenAIAnalyzer(None, http=http).analyze("t", "c")
    assert not result.ok
    assert http.calls == []


def test_openai_analyzer_parses_response():
    http = FakeHttp(FakeResponse(200, {"output_text": json.dumps(GOOD)}))
    result = OpenAIAnalyzer("sk-test", http=http, sleep=lambda s: None).analyze("fell off ladder", "age 40")
    assert result.ok
    assert result.assessment.risk_score == 9
    url, kwargs = http.calls[0]
    assert url.endswith("/v1/responses")
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert "fell off ladder" in kwargs["json"]["input"]
    assert "age 40" in kwargs["json"]["input"]


def test_openai_analyzer_retries_rate_limit_then_succeeds():
    sleeps = []
    http = FakeHttp(
        FakeResponse(429, text="rate limited", headers={"Retry-After": "2"}),
        requests.exceptions.ConnectionError("reset"),
        FakeResponse(200, {"output_text": json.dumps(GOOD)}),
    )
    result = OpenAIAnalyzer("sk-test", max_attempts=3, http=http, sleep=sleeps.append).analyze("t", "")
    assert result.ok
    assert len(http.calls) == 3
    assert len(sleeps) == 2
    assert sleeps[0] >= 2


def test_openai_analyzer_gives_up_on_insufficient_quota():
    http = FakeHttp(FakeResponse(429, text='{"error": {"code": "insufficient_quota"}}'))
    result = OpenAIAnalyzer("sk-test", max_attempts=3, http=http, sleep=lambda s: None).analyze("t", "")
    assert not result.ok
    assert len(http.calls) == 1


def test_openai_analyzer_falls_back_after_exhausting_retries():
    sleeps = []
    http = FakeHttp(FakeResponse(503), FakeResponse(503))
    result = OpenAIAnalyzer("sk-test", max_attempts=2, http=http, sleep=sleeps.append).analyze("t", "")
    assert not result.ok
    assert result.assessment == FALLBACK_ASSESSMENT
    # no pause after the last attempt
    assert len(sleeps) == 1


def test_openai_analyzer_client_error_falls_back():
    http = FakeHttp(FakeResponse(400, text="bad request"))
    result = OpenAIAnalyzer("sk-test", http=http, sleep=lambda s: None).analyze("t", "")
    assert not result.ok
    assert "analysis request failed" in result.reason


def test_heuristic_analyzer_and_factory():
    result = HeuristicAnalyzer().analyze("patient fell from height, multiple trauma, unconscious", "")
    assert result.ok and result.source == "heuristic"
    assert result.assessment.urgency_level == "critical"

    assert isinstance(build_analyzer({"ANALYSIS_BACKEND": "heuristic"}), HeuristicAnalyzer)
    analyzer = build_analyzer({"ANALYSIS_BACKEND": "openai", "OPENAI_API_KEY": "k", "ANALYSIS_MAX_ATTEMPTS": 5})
    assert isinstance(analyzer, OpenAIAnalyzer)
    assert analyzer.max_attempts == 5
    with pytest.raises(ValueError):
        build_analyzer({"ANALYSIS_BACKEND": "crystal-ball"})
