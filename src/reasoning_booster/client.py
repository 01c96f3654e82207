"""Model client abstractions and the sampler adapters used by the booster."""

from __future__ import annotations

import datetime as dt
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from .prompts import SAMPLER_SYSTEM_PROMPT

TRANSIENT_STATUS = {408, 409, 429, 500, 502, 503, 504, 520, 522, 523, 524}


class ChatClient(Protocol):
    """Minimal protocol for chat-completions backends."""

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        ...


class Sampler(Protocol):
    """Maps a prompt to raw text; ``None`` (or an exception) means no output."""

    def __call__(self, prompt: str, max_tokens: int | None = None) -> str | None:
        ...


def _coerce_text(value: Any) -> str:
    """Normalize provider-specific message content shapes into text."""

    if value is None:
        return ""

    if isinstance(value, str):
        return value

    if isinstance(value, list):
        chunks: list[str] = []
        for item in value:
            if isinstance(item, str):
                chunks.append(item)
                continue
            if isinstance(item, dict):
                text = item.get("text") or item.get("content")
                if isinstance(text, str):
                    chunks.append(text)
        return "\n".join(chunks)

    return str(value)


@dataclass
class OpenAICompatChatClient:
    """Client for OpenAI-compatible chat completion APIs (OpenAI, Cerebras, vLLM gateways)."""

    base_url: str
    model: str
    api_key: str | None = None
    timeout_sec: int = 120
    extra_body: dict[str, Any] = field(default_factory=dict)
    max_retries: int = 2

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        payload.update(self.extra_body)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = requests.post(
                    f"{self.base_url.rstrip('/')}/chat/completions",
                    json=payload,
                    headers=headers,
                    timeout=self.timeout_sec,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt < self.max_retries:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                raise RuntimeError(f"Model request failed after retries: {exc}") from exc

            if response.status_code in TRANSIENT_STATUS:
                last_error = RuntimeError(
                    f"Transient model backend status {response.status_code}: {response.text[:200]}"
                )
                if attempt < self.max_retries:
                    time.sleep(0.7 * (attempt + 1))
                    continue

            if response.status_code >= 400:
                try:
                    err = response.json().get("error", {})
                except ValueError:
                    err = {}
                if not isinstance(err, dict):
                    err = {"message": str(err)}

                code = str(err.get("code") or "").lower()
                message = str(err.get("message") or response.text[:300])
                if attempt < self.max_retries and code == "tool_use_failed":
                    payload["messages"][0]["content"] = (
                        system_prompt + "\n\nRetry note: output plain text only, exactly in the requested format."
                    )
                    time.sleep(0.6 * (attempt + 1))
                    continue

                raise RuntimeError(f"Model request failed ({response.status_code}): {message}")

            data = response.json()
            choices = data.get("choices") or []
            if not choices:
                last_error = RuntimeError("Model response missing choices")
                if attempt < self.max_retries:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                break

            message = choices[0].get("message") or {}
            content = _coerce_text(message.get("content")).strip()
            if content:
                return content

            # Some hosted backends put long text into `reasoning` when `content` is empty.
            reasoning = _coerce_text(message.get("reasoning")).strip()
            if reasoning:
                return reasoning

            last_error = RuntimeError("Model response had empty content and no fallback fields")
            if attempt < self.max_retries:
                payload["max_tokens"] = max(int(payload.get("max_tokens", max_tokens)), max_tokens * 2)
                time.sleep(0.5 * (attempt + 1))
                continue

        raise RuntimeError(str(last_error or "Model generation failed"))


def _utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass
class SamplerDiagnostics:
    """Per-session counters for backend usage."""

    total_calls: int = 0
    failed_calls: int = 0
    refused_calls: int = 0
    provider: str | None = None
    last_model: str | None = None
    last_prompt_chars: int | None = None
    last_response_chars: int | None = None
    last_ok_at: str | None = None
    last_error_at: str | None = None
    last_error: str | None = None
    keep_raw_samples: bool = False
    raw_samples: list[dict[str, Any]] = field(default_factory=list)

    def record_success(self, prompt: str, response: str | None) -> None:
        self.total_calls += 1
        self.last_prompt_chars = len(prompt)
        self.last_response_chars = len(response) if response is not None else None
        self.last_ok_at = _utc_now_iso()
        if self.keep_raw_samples:
            self.raw_samples.append(
                {
                    "prompt": prompt,
                    "response": response,
                    "model": self.last_model,
                    "provider": self.provider,
                    "at": self.last_ok_at,
                }
            )

    def record_failure(self, prompt: str, error: Exception) -> None:
        self.total_calls += 1
        self.failed_calls += 1
        self.last_prompt_chars = len(prompt)
        self.last_error_at = _utc_now_iso()
        self.last_error = str(error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCalls": self.total_calls,
            "failedCalls": self.failed_calls,
            "refusedCalls": self.refused_calls,
            "provider": self.provider,
            "lastModel": self.last_model,
            "lastPromptChars": self.last_prompt_chars,
            "lastResponseChars": self.last_response_chars,
            "lastOkAt": self.last_ok_at,
            "lastErrorAt": self.last_error_at,
            "lastError": self.last_error,
            "rawSamples": list(self.raw_samples),
        }


@dataclass
class ChatClientSampler:
    """Adapts a ``ChatClient`` to the single-prompt sampler contract."""

    client: ChatClient
    temperature: float = 0.2
    default_max_tokens: int = 800
    max_tokens_cap: int = 4000
    system_prompt: str = SAMPLER_SYSTEM_PROMPT

    def __call__(self, prompt: str, max_tokens: int | None = None) -> str | None:
        tokens = max(1, min(self.max_tokens_cap, int(max_tokens or self.default_max_tokens)))
        text = self.client.generate(
            system_prompt=self.system_prompt,
            user_prompt=prompt,
            temperature=self.temperature,
            max_tokens=tokens,
        )
        return text or None


@dataclass
class BudgetedSampler:
    """Counts calls against a hard budget and records diagnostics.

    Calls past the budget are refused (``None``) without reaching the backend.
    Backend exceptions are recorded and surfaced as ``None``.
    """

    sampler: Sampler
    max_calls: int
    diagnostics: SamplerDiagnostics = field(default_factory=SamplerDiagnostics)

    @property
    def exhausted(self) -> bool:
        return self.diagnostics.total_calls >= max(0, int(self.max_calls))

    def __call__(self, prompt: str, max_tokens: int | None = None) -> str | None:
        if self.exhausted:
            self.diagnostics.refused_calls += 1
            return None
        try:
            response = self.sampler(prompt, max_tokens)
        except Exception as exc:
            self.diagnostics.record_failure(prompt, exc)
            return None
        self.diagnostics.record_success(prompt, response)
        return response
