import json
from abc import ABC, abstractmethod

import httpx

from app.core.config import Settings

SYSTEM_PROMPT = (
    "You are a recruiting operations assistant. Answer only with JSON and keep "
    "each description to one or two practical sentences."
)


class LLMProvider(ABC):
    model_name: str = "unknown"

    @abstractmethod
    def generate(self, prompt: str) -> str:
        raise NotImplementedError


class MockLLMProvider(LLMProvider):
    """Deterministic provider that echoes one enhancement per prompted item id."""

    model_name = "mock"

    def generate(self, prompt: str) -> str:
        item_ids = [
            line.split("id=", 1)[1].split()[0]
            for line in prompt.splitlines()
            if line.strip().startswith("- id=")
        ]
        return json.dumps(
            {
                "enhancements": [
                    {
                        "itemId": item_id,
                        "description": f"Mock guidance for {item_id}.",
                        "impact": "medium",
                    }
                    for item_id in item_ids
                ],
                "additionalInsights": [],
            }
        )


class OpenAICompatibleLLMProvider(LLMProvider):
    """Chat-completions client that asks for a JSON object reply."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("LLM_API_KEY is required for a hosted LLM provider")
        self.api_key = api_key
        self.model_name = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _request_body(self, prompt: str) -> dict:
        return {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

    def generate(self, prompt: str) -> str:
        with httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self._transport,
        ) as client:
            response = client.post("/chat/completions", json=self._request_body(prompt))

        if response.is_error:
            raise RuntimeError(f"LLM request failed ({response.status_code}): {response.text[:300]}")
        return _completion_text(response.json())


def _completion_text(body: dict) -> str:
    choices = body.get("choices") or [{}]
    content = (choices[0].get("message") or {}).get("content")
    if not content:
        raise RuntimeError("LLM response missing content")
    return str(content).strip()


DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "groq": "https://api.groq.com/openai/v1",
}


def build_llm_provider(settings: Settings) -> LLMProvider:
    provider = (settings.llm_provider or "mock").strip().lower()

    if provider.startswith(("sk-", "gsk_")):
        raise ValueError(
            "LLM_PROVIDER appears to contain an API key. Set LLM_PROVIDER to 'openai' or 'groq' "
            "and move the key to LLM_API_KEY."
        )
    if provider == "mock":
        return MockLLMProvider()
    if provider not in DEFAULT_BASE_URLS:
        raise ValueError("Unsupported LLM_PROVIDER. Supported values: mock, openai, groq.")

    base_url = settings.llm_base_url
    # The shared default points at OpenAI; another provider only honours an explicit override.
    if not base_url or (provider != "openai" and base_url == DEFAULT_BASE_URLS["openai"]):
        base_url = DEFAULT_BASE_URLS[provider]

    return OpenAICompatibleLLMProvider(
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        base_url=base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )
