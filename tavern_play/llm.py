"""LLM client for flow agents.

Every agent in a flow calls its LLM through one protocol:

    async def __call__(self, agent: str, prompt: str) -> Completion: ...

A Completion is the generated text plus what the backend reported about it:
the model that answered and why it stopped. The flow executor publishes the
model as generation progress and keeps finish_reason in the delta metadata,
where failure notices pick it up.

HttpLLM serves one configured connection (an entry of llm_connections in
config.json, see tavern_play.config). The wire format comes from the
connection's provider_format:

  koboldcpp  POST {url}/api/v1/generate  -> {"results": [{"text", "finish_reason"}]}
  openai     POST {url}/v1/completions   -> {"model", "choices": [{"text", "finish_reason"}]}

EchoLLM answers with the prompt itself; flows can be smoke-tested with it
without a running backend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal, NamedTuple, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ProviderFormat = Literal["koboldcpp", "openai"]


class LLMError(RuntimeError):
    """Raised when a connection cannot be reached or answers unusably."""


class LLMConnection(BaseModel):
    """One entry of llm_connections."""

    name: str = ""
    provider_url: str
    api_key: str = ""
    provider_format: ProviderFormat = "koboldcpp"
    model: str = ""

    @property
    def label(self) -> str:
        return self.name or self.provider_url


class Completion(BaseModel):
    text: str
    model: str = ""
    finish_reason: str | None = None


class LLM(Protocol):
    model_name: str

    async def __call__(self, agent: str, prompt: str) -> Completion: ...


# ---------------------------------------------------------------------------
# Wire formats
# ---------------------------------------------------------------------------

class _WireFormat(NamedTuple):
    path: str
    body: Callable[[LLMConnection, str], dict[str, Any]]
    parse: Callable[[dict[str, Any]], Completion]


def _first(data: dict[str, Any], key: str, backend: str) -> dict[str, Any]:
    items = data.get(key)
    if not items or "text" not in items[0]:
        raise LLMError(f"Unexpected response format from {backend} backend")
    return items[0]


def _kobold_parse(data: dict[str, Any]) -> Completion:
    result = _first(data, "results", "KoboldCpp")
    return Completion(text=result["text"], finish_reason=result.get("finish_reason"))


def _openai_body(connection: LLMConnection, prompt: str) -> dict[str, Any]:
    body: dict[str, Any] = {"prompt": prompt}
    if connection.model:
        body["model"] = connection.model
    return body


def _openai_parse(data: dict[str, Any]) -> Completion:
    choice = _first(data, "choices", "OpenAI-compatible")
    return Completion(
        text=choice["text"],
        model=data.get("model") or "",
        finish_reason=choice.get("finish_reason"),
    )


_FORMATS: dict[str, _WireFormat] = {
    "koboldcpp": _WireFormat("/api/v1/generate", lambda c, p: {"prompt": p}, _kobold_parse),
    "openai": _WireFormat("/v1/completions", _openai_body, _openai_parse),
}


# ---------------------------------------------------------------------------
# HttpLLM
# ---------------------------------------------------------------------------

class HttpLLM:
    """Completion client bound to one connection.

    model_name starts as the configured model (or the connection name) and
    follows whatever model the backend last reported.
    """

    def __init__(self, connection: LLMConnection, timeout: float = 120.0) -> None:
        self.connection = connection
        self._format = _FORMATS[connection.provider_format]
        self._timeout = timeout
        self._reported_model = ""

    @property
    def model_name(self) -> str:
        return (
            self._reported_model
            or self.connection.model
            or self.connection.name
            or self.connection.provider_format
        )

    @property
    def url(self) -> str:
        return self.connection.provider_url.rstrip("/") + self._format.path

    async def __call__(self, agent: str, prompt: str) -> Completion:
        headers = {"Content-Type": "application/json"}
        if self.connection.api_key:
            headers["Authorization"] = f"Bearer {self.connection.api_key}"
        logger.debug(
            "llm call agent=%s connection=%s prompt_len=%d",
            agent, self.connection.label, len(prompt),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self.url, json=self._format.body(self.connection, prompt), headers=headers
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise LLMError(self._describe(e)) from e

        completion = self._format.parse(resp.json())
        if completion.model:
            self._reported_model = completion.model
        logger.debug(
            "llm response agent=%s model=%s finish=%s len=%d",
            agent, self.model_name, completion.finish_reason, len(completion.text),
        )
        return completion

    def _describe(self, error: httpx.HTTPError) -> str:
        label = self.connection.label
        if isinstance(error, httpx.TimeoutException):
            return f"LLM connection {label!r} timed out after {self._timeout}s"
        if isinstance(error, httpx.ConnectError):
            return f"Cannot connect to LLM connection {label!r} at {self.url}"
        if isinstance(error, httpx.HTTPStatusError):
            return f"LLM connection {label!r} returned HTTP {error.response.status_code}"
        return f"Request to LLM connection {label!r} failed: {error}"


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class EchoLLM:
    model_name = "echo"

    async def __call__(self, agent: str, prompt: str) -> Completion:
        logger.debug("EchoLLM agent=%s prompt_len=%d", agent, len(prompt))
        return Completion(text=prompt, model=self.model_name, finish_reason="stop")
