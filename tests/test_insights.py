import json

import pytest

import insights
from insights import FALLBACK_SUMMARY, build_prompt, get_business_insights, parse_insight

STATS = {"totalSales": 1500.0, "totalDue": 700.0, "dailySales": 100.0, "monthlySales": 1200.0}
CUSTOMERS = [
    {"id": "a", "name": "Ramesh", "due": 400.0},
    {"id": "b", "name": "Suresh", "due": 200.0},
    {"id": "c", "name": "Mahesh", "due": 60.0},
    {"id": "d", "name": "Dinesh", "due": 40.0},
    {"id": "e", "name": "Paid Up", "due": 0.0},
]


class FakeModel:
    reply = ""
    error = None
    calls = []

    def __init__(self, model_name):
        self.model_name = model_name

    def generate_content(self, prompt, generation_config=None):
        FakeModel.calls.append((self.model_name, prompt, generation_config))
        if FakeModel.error is not None:
            raise FakeModel.error

        class Response:
            text = FakeModel.reply

        return Response()


@pytest.fixture
def fake_gemini(monkeypatch):
    FakeModel.reply = ""
    FakeModel.error = None
    FakeModel.calls = []
    monkeypatch.setattr(insights.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(insights.genai, "GenerativeModel", FakeModel)
    return FakeModel


def test_prompt_lists_top_three_debtors():
    prompt = build_prompt(CUSTOMERS, [], STATS)
    assert "Ramesh: ₹400" in prompt
    assert "Mahesh: ₹60" in prompt
    assert "Dinesh" not in prompt
    assert "Total Customers: 5" in prompt


def test_no_api_key_uses_fallback(fake_gemini):
    result = get_business_insights(CUSTOMERS, [], STATS, api_key="")
    assert result["summary"] == FALLBACK_SUMMARY
    assert len(result["actionItems"]) == 3
    assert fake_gemini.calls == []


def test_gemini_reply_is_parsed(fake_gemini):
    fake_gemini.reply = json.dumps({"summary": "Dues are high.", "actionItems": ["Call Ramesh", "Offer UPI"]})

    result = get_business_insights(CUSTOMERS, [], STATS, api_key="test-key", model_name="gemini-test")

    assert result == {"summary": "Dues are high.", "actionItems": ["Call Ramesh", "Offer UPI"]}
    model_name, _, generation_config = fake_gemini.calls[0]
    assert model_name == "gemini-test"
    assert generation_config == {"response_mime_type": "application/json"}


def test_gemini_error_uses_fallback(fake_gemini):
    fake_gemini.error = RuntimeError("quota exceeded")
    result = get_business_insights(CUSTOMERS, [], STATS, api_key="test-key")
    assert result["summary"] == FALLBACK_SUMMARY


@pytest.mark.parametrize("reply", [
    "not json",
    "[]",
    json.dumps({"summary": "x"}),
    json.dumps({"summary": "x", "actionItems": "call everyone"}),
    json.dumps({"summary": 5, "actionItems": []}),
])
def test_unusable_reply_uses_fallback(fake_gemini, reply):
    fake_gemini.reply = reply
    assert get_business_insights(CUSTOMERS, [], STATS, api_key="test-key")["summary"] == FALLBACK_SUMMARY


def test_parse_insight_accepts_empty_action_list():
    assert parse_insight('{"summary": "ok", "actionItems": []}') == {"summary": "ok", "actionItems": []}
