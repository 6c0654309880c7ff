"""OpenAI-compatible chat completion and transcription client."""

import json
import logging

import httpx

from .config import settings

logger = logging.getLogger(__name__)


class TranscriptionError(RuntimeError):
    """Raised when audio could not be turned into text."""


class LLMClient:
    """HTTP client for chat completions and audio transcription."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.Client | None = None,
    ):
        """Initialize LLM client.

        Args:
            api_key: API key, defaults to the configured key
            base_url: API base URL, defaults to the configured URL
            client: HTTP client to reuse, mainly for tests
        """
        self.api_key = settings.openai_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.client = client or httpx.Client(
            timeout=settings.llm_timeout_seconds,
            headers={"User-Agent": "commonplace/1.0"},
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.enabled:
            raise RuntimeError("OpenAI API key is not set")
        return {"Authorization": f"Bearer {self.api_key}"}

    def _chat(self, payload: dict) -> str:
        response = self.client.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers=self._headers(),
        )
        response.raise_for_status()
        body = response.json()

        choices = body.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise ValueError("No response from model")
        return content

    def chat_json(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> dict:
        """Send a chat completion request in JSON mode and parse the reply.

        Returns:
            Parsed JSON object from the assistant message
        """
        payload = {
            "model": model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        parsed = _extract_json(self._chat(payload))
        if not isinstance(parsed, dict):
            raise ValueError("Model did not return a JSON object")
        return parsed

    def chat_text(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> str:
        """Send a plain chat completion request and return the reply text."""
        payload = {
            "model": model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        return self._chat(payload).strip()

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        """Transcribe an audio recording to text.

        Raises:
            TranscriptionError: if the API call fails for any reason
        """
        try:
            response = self.client.post(
                f"{self.base_url}/audio/transcriptions",
                headers=self._headers(),
                data={
                    "model": settings.transcription_model,
                    "response_format": "text",
                },
                files={"file": (filename, audio, "audio/webm")},
            )
            response.raise_for_status()
            return response.text.strip()
        except Exception as e:
            logger.error(f"Transcription error: {e}")
            raise TranscriptionError("Failed to transcribe audio") from e

    def close(self) -> None:
        self.client.close()


def _extract_json(content: str) -> dict:
    text = content.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        lines = lines[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    return json.loads(text)
