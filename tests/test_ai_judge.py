import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from termscheck_agent import ai_judge
from termscheck_agent.ai_judge import (
    GeminiJudge,
    OpenAIJudge,
    build_prompt,
    normalize_judgment,
    parse_judgment_json,
    truncate_for_judgment,
)
from termscheck_agent.errors import JudgmentFailure, MalformedJudgmentResponse, MissingCredential
from termscheck_agent.heuristics import score_text

VERDICT = {
    "summary": "<ul><li>Arbitration required.</li></ul>",
    "riskScore": 72,
    "riskFactors": [
        {"title": "Arbitration", "description": "Class actions waived.", "level": "High"},
        {"title": "Tracking", "description": "Cross-site tracking.", "level": "moderate"},
    ],
}


def test_parse_direct_json():
    assert parse_judgment_json(json.dumps(VERDICT)) == VERDICT


def test_parse_json_embedded_in_prose():
    content = "Sure! Here is the analysis:\n```json\n" + json.dumps(VERDICT) + "\n```\nLet me know {if} you need more."
    assert parse_judgment_json(content) == VERDICT


def test_parse_skips_unbalanced_braces_before_object():
    content = "Note {unfinished ... " + json.dumps({"riskScore": 10, "summary": "ok"})
    assert parse_judgment_json(content)["riskScore"] == 10


@pytest.mark.parametrize("content", ["", "no json here", "{broken: json", "[1, 2, 3]"])
def test_parse_rejects_unusable_output(content):
    with pytest.raises(MalformedJudgmentResponse):
        parse_judgment_json(content)


def test_normalize_clamps_and_coerces():
    raw = dict(VERDICT, riskScore="150")
    analysis = normalize_judgment(raw, "example.com")
    assert analysis.risk_score == 100
    assert analysis.is_fallback is False
    assert [f.level for f in analysis.risk_factors] == ["high", "medium"]


def test_normalize_requires_score():
    with pytest.raises(MalformedJudgmentResponse):
        normalize_judgment({"summary": "no score"}, "example.com")
    with pytest.raises(MalformedJudgmentResponse):
        normalize_judgment(["not", "an", "object"], "example.com")


def test_prompt_carries_heuristic_findings():
    findings = score_text("mandatory arbitration and may share")
    prompt = build_prompt("TEXT", "example.com", findings)
    assert "High risk factors: mandatory arbitration" in prompt
    assert "Medium risk factors: may share" in prompt
    assert "Low risk factors: None" in prompt
    assert f"Initial risk score: {findings.risk_score}/100" in prompt


def test_truncate_for_judgment():
    assert truncate_for_judgment("abc", 5) == "abc"
    assert truncate_for_judgment("abcdefgh", 5) == "abcde..."


def _run_judge(handler, credential="sk-test"):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            judge = OpenAIJudge(client, input_chars=100)
            return await judge.judge("x" * 500, "example.com", score_text(""), credential)

    return asyncio.run(main())


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def test_openai_judge_success():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return _completion(json.dumps(VERDICT))

    analysis = _run_judge(handler)
    assert analysis.risk_score == 72
    assert analysis.domain == "example.com"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"]["messages"][0]["role"] == "system"
    assert "x" * 100 + "..." in captured["body"]["messages"][1]["content"]


def test_openai_judge_http_error():
    with pytest.raises(JudgmentFailure):
        _run_judge(lambda request: httpx.Response(500, json={"error": "boom"}))


def test_openai_judge_malformed_content():
    with pytest.raises(MalformedJudgmentResponse):
        _run_judge(lambda request: _completion("I cannot help with that."))
    with pytest.raises(MalformedJudgmentResponse):
        _run_judge(lambda request: httpx.Response(200, json={"choices": []}))


def test_openai_judge_needs_credential():
    with pytest.raises(MissingCredential):
        _run_judge(lambda request: _completion("{}"), credential=None)


class FakeGenaiClient:
    """Stands in for google.genai.Client; answers every call with ``reply``."""

    instances: list["FakeGenaiClient"] = []
    reply: str | Exception = ""

    def __init__(self, api_key: str):
        self.api_key = api_key
        self.calls: list[dict] = []
        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self._generate_content))
        FakeGenaiClient.instances.append(self)

    async def _generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        return SimpleNamespace(text=self.reply)


@pytest.fixture
def gemini(monkeypatch):
    monkeypatch.setattr(ai_judge.genai, "Client", FakeGenaiClient)
    monkeypatch.setattr(FakeGenaiClient, "instances", [])
    monkeypatch.setattr(FakeGenaiClient, "reply", "")
    return FakeGenaiClient


def _run_gemini(judge, credential="gm-key"):
    return asyncio.run(judge.judge("x" * 500, "example.com", score_text(""), credential))


def test_gemini_judge_strips_code_fences(gemini):
    gemini.reply = "```json\n" + json.dumps(VERDICT) + "\n```"
    analysis = _run_gemini(GeminiJudge(model="gemini-test", input_chars=100))
    assert analysis.risk_score == 72
    assert [f.level for f in analysis.risk_factors] == ["high", "medium"]

    call = gemini.instances[0].calls[0]
    assert gemini.instances[0].api_key == "gm-key"
    assert call["model"] == "gemini-test"
    assert "x" * 100 + "..." in call["contents"][0].parts[0].text


def test_gemini_judge_reuses_client_per_key(gemini):
    gemini.reply = json.dumps(VERDICT)
    judge = GeminiJudge()
    _run_gemini(judge)
    _run_gemini(judge)
    assert len(gemini.instances) == 1

    _run_gemini(judge, credential="gm-other")
    assert [c.api_key for c in gemini.instances] == ["gm-key", "gm-other"]


def test_gemini_sdk_errors_become_judgment_failures(gemini):
    gemini.reply = RuntimeError("quota exhausted")
    with pytest.raises(JudgmentFailure, match="quota exhausted"):
        _run_gemini(GeminiJudge())


def test_gemini_unusable_answer_is_malformed(gemini):
    gemini.reply = "I'd rather not."
    with pytest.raises(MalformedJudgmentResponse):
        _run_gemini(GeminiJudge())


def test_gemini_needs_credential(gemini):
    with pytest.raises(MissingCredential):
        _run_gemini(GeminiJudge(), credential=None)
    assert gemini.instances == []
