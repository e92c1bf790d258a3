"""
AI-powered policy judge.

Sends policy text (plus the keyword findings already computed for it) to a
language model and turns the free-form answer into an Analysis. Two backends:
OpenAI chat completions over httpx, and Google Gemini through google-genai.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx
from google import genai
from google.genai import types

from .errors import JudgmentFailure, MalformedJudgmentResponse, MissingCredential
from .models import Analysis, HeuristicResult, RiskFactor

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a legal expert that analyzes Terms & Conditions and Privacy Policies. "
    "Format your response strictly as JSON."
)

_LEVEL_MAP = {
    "high": "high",
    "severe": "high",
    "critical": "high",
    "medium": "medium",
    "med": "medium",
    "moderate": "medium",
    "mid": "medium",
    "low": "low",
    "minor": "low",
}


class Judge(Protocol):
    async def judge(self, text: str, domain: str, findings: HeuristicResult, credential: str | None) -> Analysis:
        ...


def truncate_for_judgment(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def build_prompt(text: str, domain: str, findings: HeuristicResult) -> str:
    return f"""
Analyze the following Terms & Conditions and/or Privacy Policy from {domain}.

Initial automated analysis found:
- High risk factors: {", ".join(findings.high_risk_matches) or "None"}
- Medium risk factors: {", ".join(findings.medium_risk_matches) or "None"}
- Low risk factors: {", ".join(findings.low_risk_matches) or "None"}
- Initial risk score: {findings.risk_score}/100

TEXT TO ANALYZE:
{text}

Even if this isn't explicitly a terms of service page, analyze it as if it were and extract any relevant legal or policy information.

Provide the following:
1. A concise summary (maximum 5 bullet points) of the most important points
2. An overall risk assessment score (0-100)
3. A list of 3-5 specific risk factors with:
   - Title
   - Brief description
   - Risk level (high/medium/low)

Format your response as JSON:
{{
  "summary": "Bullet point summary in HTML format",
  "riskScore": number,
  "riskFactors": [
    {{
      "title": "string",
      "description": "string",
      "level": "high|medium|low"
    }}
  ]
}}
"""


def parse_judgment_json(content: str) -> dict[str, Any]:
    """Parse model output as JSON: the whole text first, then the first balanced object in it."""
    text = (content or "").strip()
    if not text:
        raise MalformedJudgmentResponse("Empty response from judgment provider")

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)

    raise MalformedJudgmentResponse("Could not extract JSON from response")


def _coerce_factors(raw: Any) -> list[RiskFactor]:
    if not isinstance(raw, list):
        return []
    factors: list[RiskFactor] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        description = str(item.get("description") or "").strip()
        level = _LEVEL_MAP.get(str(item.get("level") or "").strip().lower(), "medium")
        factors.append(RiskFactor(title=title, description=description, level=level))
    return factors


def _coerce_summary(raw: Any) -> str:
    if isinstance(raw, list):
        items = [str(s).strip() for s in raw if str(s).strip()]
        return "<ul>" + "".join(f"<li>{s}</li>" for s in items) + "</ul>"
    summary = str(raw or "").strip()
    return summary or "Analysis completed"


def normalize_judgment(raw: Any, domain: str) -> Analysis:
    """Clamp/normalize a parsed model answer into an Analysis.

    Models occasionally return partial output or unexpected enums; everything
    but the score is repaired. Without a usable score there is no analysis.
    """
    if not isinstance(raw, dict):
        raise MalformedJudgmentResponse("Judgment is not a JSON object")

    score_raw = raw.get("riskScore", raw.get("risk_score"))
    try:
        score = int(float(score_raw))
    except (TypeError, ValueError) as e:
        raise MalformedJudgmentResponse(f"Invalid riskScore: {score_raw!r}") from e
    score = max(0, min(100, score))

    return Analysis(
        domain=domain,
        risk_score=score,
        summary=_coerce_summary(raw.get("summary")),
        risk_factors=_coerce_factors(raw.get("riskFactors", raw.get("risk_factors"))),
        is_fallback=False,
    )


class OpenAIJudge:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 30.0,
        input_chars: int = 8000,
    ):
        self._client = client
        self._model = model
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._timeout_s = timeout_s
        self._input_chars = input_chars

    async def judge(self, text: str, domain: str, findings: HeuristicResult, credential: str | None) -> Analysis:
        if not credential:
            raise MissingCredential()

        prompt = build_prompt(truncate_for_judgment(text, self._input_chars), domain, findings)
        body = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.7,
        }
        try:
            res = await self._client.post(
                self._url,
                json=body,
                headers={"Authorization": f"Bearer {credential}"},
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as e:
            raise JudgmentFailure(f"OpenAI request failed: {e}") from e
        if res.status_code >= 400:
            raise JudgmentFailure(f"API error: {res.status_code}")

        try:
            data = res.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedJudgmentResponse("Unexpected API response format") from e
        if not isinstance(content, str) or not content.strip():
            raise MalformedJudgmentResponse("Unexpected API response format")

        return normalize_judgment(parse_judgment_json(content), domain)


class GeminiJudge:
    def __init__(self, *, model: str = "gemini-2.5-flash", input_chars: int = 8000):
        self._model = model
        self._input_chars = input_chars
        self._clients: dict[str, genai.Client] = {}

    def _client(self, credential: str) -> genai.Client:
        client = self._clients.get(credential)
        if client is None:
            # One client per key; a new key replaces the old one.
            self._clients.clear()
            client = self._clients[credential] = genai.Client(api_key=credential)
        return client

    async def judge(self, text: str, domain: str, findings: HeuristicResult, credential: str | None) -> Analysis:
        if not credential:
            raise MissingCredential()

        prompt = build_prompt(truncate_for_judgment(text, self._input_chars), domain, findings)
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            response_mime_type="application/json",
            temperature=0.2,
            max_output_tokens=4096,
        )
        try:
            resp = await self._client(credential).aio.models.generate_content(
                model=self._model,
                contents=[types.Content(role="user", parts=[types.Part.from_text(text=prompt)])],
                config=config,
            )
        except Exception as e:
            raise JudgmentFailure(f"Gemini call failed: {e}") from e

        content = (getattr(resp, "text", None) or "").strip()
        # The SDK may still return fenced JSON sometimes.
        if content.startswith("```json"):
            content = content[7:]
        elif content.startswith("```"):
            content = content[3:]
        if content.endswith("```"):
            content = content[:-3]

        return normalize_judgment(parse_judgment_json(content), domain)
