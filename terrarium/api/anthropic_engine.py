"""
Anthropic backend — a remote model standing in for the creature's mind.

Wraps ``anthropic.AsyncAnthropic``. System messages are folded into the
``system`` parameter, a JSON schema (when given) is appended to it as a plain
instruction, and each request is bounded by ``asyncio.wait_for`` inside the
retry wrapper. The engine keeps no conversation state of its own.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

import anthropic
import structlog

from terrarium.api.engine import (
    InferenceEngine,
    InferenceEngineInitError,
    ProgressCallback,
    split_system,
)
from terrarium.config import InferenceConfig
from terrarium.harness.retry import RetryConfig, with_retries

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOKENS = 128


def _merge_turns(turns: list[dict[str, str]]) -> list[dict[str, str]]:
    """The Messages API wants alternating roles starting with a user turn."""
    merged: list[dict[str, str]] = []
    for turn in turns:
        if not turn["content"]:
            continue
        if merged and merged[-1]["role"] == turn["role"]:
            merged[-1] = {
                "role": turn["role"],
                "content": f"{merged[-1]['content']}\n{turn['content']}",
            }
        else:
            merged.append(dict(turn))
    if merged and merged[0]["role"] != "user":
        merged.insert(0, {"role": "user", "content": "..."})
    return merged


class AnthropicInferenceEngine(InferenceEngine):
    """Completions from the Anthropic Messages API."""

    def __init__(self, config: InferenceConfig):
        self._config = config
        self._model = config.model
        self._client: Optional[anthropic.AsyncAnthropic] = None
        self._retry_config = RetryConfig.from_config(config)
        self._request_timeout_seconds = float(config.request_timeout_seconds)

        self._total_calls = 0
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._last_call_time: Optional[float] = None

    @property
    def model(self) -> str:
        return self._model

    async def init(
        self,
        model_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if model_id:
            self._model = model_id
        if on_progress:
            on_progress(0.0, "connecting")
        try:
            kwargs: dict[str, Any] = {"timeout": self._request_timeout_seconds}
            if self._config.api_key:
                kwargs["api_key"] = self._config.api_key
            self._client = anthropic.AsyncAnthropic(**kwargs)
        except Exception as exc:
            self._client = None
            raise InferenceEngineInitError(
                f"Failed to initialize Anthropic client: {exc}"
            ) from exc
        if on_progress:
            on_progress(1.0, "ready")
        logger.info(
            "anthropic_engine.initialized",
            model=self._model,
            base_url=str(self._client.base_url),
        )

    def is_ready(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        messages: list[dict[str, str]],
        grammar: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        if self._client is None:
            raise InferenceEngineInitError("Anthropic engine used before init()")

        options = options or {}
        system, turns = split_system(messages)
        if grammar:
            system = (
                f"{system}\nReply with only a JSON object matching this schema: "
                f"{json.dumps(grammar, separators=(',', ':'))}"
            )
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": int(options.get("max_tokens", DEFAULT_MAX_TOKENS)),
            "messages": _merge_turns(turns),
        }
        if system:
            kwargs["system"] = system
        # Newer models reject temperature and top_p together; temperature wins.
        if "temperature" in options:
            kwargs["temperature"] = float(options["temperature"])
        elif "top_p" in options:
            kwargs["top_p"] = float(options["top_p"])

        client = self._client
        start_time = time.monotonic()

        async def _create() -> anthropic.types.Message:
            return await asyncio.wait_for(
                client.messages.create(**kwargs),
                timeout=self._request_timeout_seconds,
            )

        try:
            response = await with_retries(_create, config=self._retry_config)
        except anthropic.APIConnectionError as e:
            logger.error("anthropic_engine.connection_error", error=str(e))
            raise
        except anthropic.APIError as e:
            logger.error(
                "anthropic_engine.api_error",
                error=str(e),
                status=getattr(e, "status_code", None),
            )
            raise

        elapsed = time.monotonic() - start_time
        self._total_calls += 1
        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens
        self._last_call_time = elapsed

        logger.debug(
            "anthropic_engine.completion",
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            elapsed_seconds=round(elapsed, 2),
            stop_reason=response.stop_reason,
        )
        return self.extract_text(response)

    @staticmethod
    def extract_text(response: anthropic.types.Message) -> str:
        return "\n".join(b.text for b in response.content if b.type == "text")

    def clear_cache(self) -> None:
        self._client = None

    async def destroy(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.close()
        logger.info("anthropic_engine.destroyed", calls=self._total_calls)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "model": self._model,
            "total_calls": self._total_calls,
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
            "last_call_seconds": self._last_call_time,
        }
