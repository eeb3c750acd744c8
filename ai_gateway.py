"""AI Gateway for Goal Reminder Service.

Sends a goal + timeframe prompt to a hosted text-generation model and
turns the reply into typed reminder candidates. Providers are pluggable:
Gemini (generateContent REST API) and any OpenAI-compatible
chat/completions endpoint.

Every failure surfaces as GatewayError with a kind; callers fall back to
the template schedule and keep the message for the user.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from config import settings
from errors import GatewayError, GatewayErrorKind
from logger_config import setup_logger
from schemas import Candidate, GoalAnalysis, ReminderCategory

logger = setup_logger(__name__, 'ai.log')

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


class _RawReminder(BaseModel):
    """Shape of one reminder inside the model's JSON reply."""

    model_config = ConfigDict(strict=True, extra="ignore")

    message: str
    days_from_now: int
    category: str


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message", "") or response.text
    except (ValueError, AttributeError):
        return response.text


def raise_for_provider_status(response: httpx.Response) -> None:
    """Map a non-2xx provider response to a GatewayError."""
    if response.is_success:
        return

    detail = _error_message(response)
    status = response.status_code
    logger.error(f"AI provider returned {status}: {detail}")

    if status in (401, 403) or "API_KEY_INVALID" in detail:
        raise GatewayError(GatewayErrorKind.AUTH_INVALID, "The AI API key is invalid or lacks access.")
    if status == 429 or "quota" in detail.lower():
        raise GatewayError(GatewayErrorKind.RATE_LIMITED, "AI request limit reached. Please try again later.")
    raise GatewayError(GatewayErrorKind.UNKNOWN, f"AI request failed: {status} {detail}".strip())


class AIProvider(ABC):
    """One hosted model behind the gateway."""

    name: str = "provider"

    def __init__(self, timeout: float = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def generate(self, prompt: str, api_key: str) -> str:
        """Send ``prompt`` and return the generated text."""
        if not api_key or not api_key.strip():
            raise GatewayError(GatewayErrorKind.AUTH_INVALID, "No AI API key is configured.")
        try:
            async with self._client() as client:
                return await self._request(client, prompt, api_key.strip())
        except httpx.TimeoutException:
            logger.error(f"Timeout while calling {self.name}")
            raise GatewayError(GatewayErrorKind.NETWORK, "The AI service did not respond in time.")
        except httpx.RequestError as e:
            logger.error(f"Network error while calling {self.name}: {str(e)}")
            raise GatewayError(GatewayErrorKind.NETWORK, "Could not reach the AI service. Check your connection.")

    @abstractmethod
    async def _request(self, client: httpx.AsyncClient, prompt: str, api_key: str) -> str:
        pass


class GeminiProvider(AIProvider):
    """Google Gemini generateContent endpoint."""

    name = "gemini"

    def __init__(self, model: str = None, base_url: str = None, **kwargs):
        super().__init__(**kwargs)
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")

    async def _request(self, client: httpx.AsyncClient, prompt: str, api_key: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}

        response = await client.post(url, params={"key": api_key}, json=payload)
        raise_for_provider_status(response)

        try:
            return response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI returned no usable content.")


class OpenAIProvider(AIProvider):
    """OpenAI-compatible chat/completions endpoint."""

    name = "openai"

    def __init__(self, model: str = None, base_url: str = None, **kwargs):
        super().__init__(**kwargs)
        self.model = model or settings.OPENAI_MODEL
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")

    async def _request(self, client: httpx.AsyncClient, prompt: str, api_key: str) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        response = await client.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
        )
        raise_for_provider_status(response)

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI returned no usable content.")


PROVIDERS = {
    GeminiProvider.name: GeminiProvider,
    OpenAIProvider.name: OpenAIProvider,
}


def build_provider(name: str = None, **kwargs) -> AIProvider:
    name = (name or settings.AI_PROVIDER).lower()
    if name not in PROVIDERS:
        raise ValueError(f"Unknown AI provider '{name}'. Choose one of: {', '.join(PROVIDERS)}")
    return PROVIDERS[name](**kwargs)


def build_goal_prompt(goal: str, timeframe_hint: Optional[str] = None) -> str:
    categories = ", ".join(c.value for c in ReminderCategory if c is not ReminderCategory.CUSTOM)
    if timeframe_hint:
        timeframe_text = f"within {timeframe_hint}"
        count_text = f"Create 8-15 motivational reminders that fit a timeframe of {timeframe_hint}."
    else:
        timeframe_text = "(suggest a suitable timeframe for this goal)"
        count_text = f"Suggest a suitable timeframe for \"{goal}\" and create 8-15 motivational reminders."

    return f"""Create a motivation plan for this goal: "{goal}" {timeframe_text}.

Reply EXACTLY in this JSON format (no other text):

{{
  "strategy": "Your strategy here (100-200 words)",
  "recommended_timeframe": "{timeframe_hint or 'the timeframe you suggest, e.g. 3 months'}",
  "reminders": [
    {{"message": "A specific motivational reminder", "days_from_now": 1, "category": "Start"}},
    {{"message": "Another reminder", "days_from_now": 7, "category": "Weekly Review"}}
  ]
}}

{count_text}
Use only these categories: {categories}.
"days_from_now" must be a positive whole number.
Each reminder must be specific, encouraging and relevant to "{goal}". Do NOT add markdown."""


def parse_goal_analysis(text: str) -> GoalAnalysis:
    """Extract the JSON plan from generated text.

    Raises:
        GatewayError(UNPARSEABLE): no JSON object, missing strategy or
            reminders, or a reminder with missing or mistyped fields
    """
    match = _JSON_BLOCK_RE.search(text or "")
    if not match:
        raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI reply did not contain a JSON plan.")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI reply contained malformed JSON.")

    if not isinstance(data, dict):
        raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI reply was not a JSON object.")

    strategy = data.get("strategy")
    if not isinstance(strategy, str) or not strategy.strip():
        raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI did not produce a strategy.")

    items = data.get("reminders", data.get("motivations"))
    if not isinstance(items, list) or not items:
        raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI did not produce any reminders.")

    candidates: List[Candidate] = []
    for item in items:
        try:
            raw = _RawReminder.model_validate(item)
        except PydanticValidationError as e:
            logger.warning(f"Malformed reminder in AI reply: {item!r} ({e.error_count()} error(s))")
            raise GatewayError(GatewayErrorKind.UNPARSEABLE, "The AI produced a reminder with missing or invalid fields.")
        candidates.append(Candidate(message=raw.message, day_offset=raw.days_from_now, category=raw.category))

    recommended = data.get("recommended_timeframe")
    return GoalAnalysis(
        strategy=strategy.strip(),
        candidates=candidates,
        recommended_timeframe=recommended if isinstance(recommended, str) else None,
    )


class AIGateway:
    """Provider-agnostic entry point used by the reminder manager."""

    def __init__(self, provider: AIProvider, default_api_key: str = ""):
        self.provider = provider
        self.default_api_key = default_api_key

    async def request_candidates(
        self,
        goal: str,
        timeframe_hint: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> GoalAnalysis:
        """Ask the provider for a plan and parse it into candidates.

        Raises:
            GatewayError: on any provider or parsing failure
        """
        logger.info(
            f"Requesting plan from {self.provider.name} for '{goal}'"
            f"{f' ({timeframe_hint})' if timeframe_hint else ' (auto timeframe)'}"
        )
        text = await self.provider.generate(build_goal_prompt(goal, timeframe_hint), api_key or self.default_api_key)
        analysis = parse_goal_analysis(text)
        logger.info(
            f"AI plan parsed: {len(analysis.candidates)} candidate(s), "
            f"recommended timeframe: {analysis.recommended_timeframe or 'not specified'}"
        )
        return analysis

    async def test_connection(self, api_key: Optional[str] = None) -> bool:
        """Return True when the provider answers a trivial prompt."""
        try:
            text = await self.provider.generate(
                'Hello, please reply "Connection successful" to verify the API.',
                api_key or self.default_api_key,
            )
        except GatewayError as e:
            logger.warning(f"AI connection test failed: {e.kind.value} - {e}")
            return False
        return bool(text and text.strip())
