"""
Model-call collaborator: ordered chat messages in, reply text out.

The core treats this as an opaque call that either returns text or raises
``ModelCallError``. Timeouts belong to the underlying client; no retries
happen here (``max_retries=0``), failed batches are handled by the caller.
"""

from __future__ import annotations

import os
from typing import Any

from langchain_core.output_parsers import StrOutputParser
from langchain_openai import ChatOpenAI

from subtitle_agent.utils.config_loader import section

API_KEY_ENV = "SUBTITLE_AGENT_API_KEY"


class ModelCallError(RuntimeError):
    """Raised when the model endpoint could not be reached or returned no usable text."""

    def __init__(self, message: str, http_status: int | None = None, vendor_message: str | None = None):
        super().__init__(message)
        self.http_status = http_status
        self.vendor_message = vendor_message


def _vendor_details(exc: Exception) -> tuple[int | None, str | None]:
    status = getattr(exc, "status_code", None)
    body = getattr(exc, "body", None)
    vendor_message = None
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            vendor_message = error.get("message")
    if vendor_message is None:
        vendor_message = getattr(exc, "message", None) or str(exc) or None
    return (status if isinstance(status, int) else None), vendor_message


class ModelCaller:
    def __init__(
        self,
        api_key: str,
        model: str = "deepseek-chat",
        api_base: str = "https://api.deepseek.com/v1",
        temperature: float = 0.3,
        max_tokens: int = 4096,
        timeout: float = 180,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._clients: dict[tuple[str, str], Any] = {}

    @classmethod
    def from_config(cls, config: dict, api_key: str | None = None) -> "ModelCaller":
        model_cfg = section(config, "model")
        return cls(
            api_key=api_key or os.getenv(API_KEY_ENV) or str(model_cfg.get("api_key", "")),
            model=str(model_cfg.get("name", "deepseek-chat")),
            api_base=str(model_cfg.get("api_base", "https://api.deepseek.com/v1")),
            temperature=float(model_cfg.get("temperature", 0.3)),
            max_tokens=int(model_cfg.get("max_tokens", 4096)),
            timeout=float(model_cfg.get("request_timeout", 180)),
        )

    def _client(self, api_base: str, model_name: str):
        key = (str(api_base), str(model_name))
        if key not in self._clients:
            self._clients[key] = ChatOpenAI(
                base_url=api_base,
                api_key=self.api_key,
                model=model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._clients[key]

    def __call__(self, messages: list[dict], model: str | None = None) -> str:
        if not self.api_key:
            raise ModelCallError("No API key configured")
        model_name = model or self.model
        prompt = [(m["role"], m["content"]) for m in messages]
        chain = self._client(self.api_base, model_name) | StrOutputParser()
        try:
            text = chain.invoke(prompt)
        except Exception as exc:  # noqa: BLE001
            status, vendor_message = _vendor_details(exc)
            label = f"HTTP {status}" if status else type(exc).__name__
            raise ModelCallError(f"Model call failed ({label}): {vendor_message}", status, vendor_message) from exc
        if not text or not text.strip():
            raise ModelCallError("Model returned an empty response")
        return text
