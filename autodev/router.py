"""
AutoDev Router — Vendor-Agnostic Model Abstraction

Routes every agent call through LiteLLM so agents never know
which vendor is backing them. Handles token-aware model demotion,
the one-shot quota fallback, transient retries, the tool-calling
loop, and usage tracking.
"""

from __future__ import annotations

import json
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import litellm
from loguru import logger
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from autodev.config_loader import AutoDevConfig

ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]

# Retried on the same model. Quota errors go to the fallback model instead.
TRANSIENT_ERRORS = (
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0
    fallback_count: int = 0


@dataclass
class UsageTracker:
    """Tracks token + dollar spend for one run."""
    usage: UsageRecord = field(default_factory=UsageRecord)

    def record(self, response: Any) -> None:
        """Record usage from a LiteLLM response.

        Args:
            response (Any): The response object returned by LiteLLM.
        """
        usage = getattr(response, "usage", None)
        if usage:
            self.usage.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.usage.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.usage.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.usage.estimated_cost += litellm.completion_cost(completion_response=response) or 0.0
        except Exception as e:
            # No pricing data for this model.
            logger.debug(f"[ROUTER] No cost data: {e}")

        self.usage.call_count += 1

    def summary(self) -> dict:
        return {
            "total_tokens": self.usage.total_tokens,
            "prompt_tokens": self.usage.prompt_tokens,
            "completion_tokens": self.usage.completion_tokens,
            "estimated_cost": round(self.usage.estimated_cost, 4),
            "call_count": self.usage.call_count,
            "fallback_count": self.usage.fallback_count,
        }


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def _balanced_object(text: str, start: int) -> str | None:
    """Return the brace-balanced object starting at `start`, string-aware."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _loads_object(candidate: str) -> dict | None:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_json(text: str | None) -> dict | None:
    """
    Best-effort extraction of the first JSON object in an LLM reply.

    Tries, in order: fenced code blocks, each brace-balanced `{...}`
    span, then the whole text. Returns None when nothing parses.
    Never raises.
    """
    if not text:
        return None

    for match in _FENCE_RE.finditer(text):
        parsed = _loads_object(match.group(1).strip())
        if parsed is not None:
            return parsed

    start = text.find("{")
    while start != -1:
        candidate = _balanced_object(text, start)
        if candidate is not None:
            parsed = _loads_object(candidate)
            if parsed is not None:
                return parsed
        start = text.find("{", start + 1)

    return _loads_object(text.strip())


def is_quota_error(error: BaseException) -> bool:
    """True for rate-limit failures (LiteLLM RateLimitError or HTTP 429)."""
    if isinstance(error, litellm.RateLimitError):
        return True
    return getattr(error, "status_code", None) == 429


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class RouterResponse(BaseModel):
    content: str
    model: str
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0
    turns: int = 0
    fallback_used: bool = False


class Router:
    """
    Vendor-agnostic model router.

    Agents call `await router.complete(role, messages)` for single-shot
    generation or `await router.run_tool_loop(...)` for the multi-turn
    tool protocol. Model demotion and quota fallback are invisible to them.
    """

    def __init__(self, config: AutoDevConfig):
        self.usage = UsageTracker()
        self.configure(config)
        litellm.suppress_debug_info = True

    def configure(self, config: AutoDevConfig) -> None:
        """(Re)load model routing from config."""
        self.config = config
        self.fallback_model = config.routing.fallback_model
        self.token_threshold = config.routing.token_threshold
        self._role_model_map = {
            "researcher": config.routing.researcher,
            "deep_researcher": config.routing.deep_researcher,
            "analyzer": config.routing.analyzer,
            "planner": config.routing.planner,
            "coder": config.routing.coder,
            "reviewer": config.routing.reviewer,
            "summarizer": config.routing.summarizer,
        }

    def reset_usage(self) -> None:
        self.usage = UsageTracker()

    def resolve_model(self, role: str) -> str:
        """Resolve agent role to a specific model string.

        Raises:
            ValueError: If the role is not in the role-to-model mapping.
        """
        model = self._role_model_map.get(role)
        if not model:
            raise ValueError(f"Unknown agent role: {role}. Known: {list(self._role_model_map)}")
        return model

    # -- token-aware model selection -------------------------------------

    @staticmethod
    def estimate_tokens(model: str, text: str) -> int:
        """Exact count when the provider tokenizer is known, else len/4."""
        try:
            return int(litellm.token_counter(model=model, text=text))
        except Exception as e:
            logger.debug(f"[ROUTER] token_counter unavailable for {model}: {e}")
            return math.ceil(len(text) / 4)

    def select_model(self, role: str, messages: list[dict[str, Any]]) -> str:
        """Pick the role's model, demoting to the fallback for oversized prompts."""
        model = self.resolve_model(role)
        if model == self.fallback_model:
            return model

        text = "\n".join(str(m.get("content") or "") for m in messages)
        tokens = self.estimate_tokens(model, text)
        if tokens > self.token_threshold:
            logger.warning(
                f"[ROUTER] {role}: ~{tokens} tokens exceeds {self.token_threshold}, "
                f"switching {model} → {self.fallback_model}"
            )
            return self.fallback_model
        return model

    # -- transport ---------------------------------------------------------

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _acomplete(self, **kwargs: Any) -> Any:
        response = await litellm.acompletion(**kwargs)
        self.usage.record(response)
        return response

    async def _with_fallback(self, role: str, model: str, call: Callable[[str], Awaitable[RouterResponse]]) -> RouterResponse:
        """Run `call(model)`; on a quota error retry exactly once on the fallback."""
        try:
            return await call(model)
        except Exception as e:
            if model == self.fallback_model or not is_quota_error(e):
                raise
            logger.warning(f"[ROUTER] {role}: quota hit on {model}, retrying once on {self.fallback_model}")
            self.usage.usage.fallback_count += 1
            response = await call(self.fallback_model)
            response.fallback_used = True
            return response

    # -- public API --------------------------------------------------------

    async def complete(
        self,
        role: str,
        messages: list[dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: int = 8192,
        response_format: dict | None = None,
        grounded: bool = False,
    ) -> RouterResponse:
        """Single-shot generation, optionally with provider search grounding."""
        model = self.select_model(role, messages)

        async def _call(m: str) -> RouterResponse:
            kwargs: dict[str, Any] = {
                "model": m,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
            if response_format:
                kwargs["response_format"] = response_format
            if grounded and m.startswith("gemini"):
                kwargs["tools"] = [{"googleSearch": {}}]

            start = time.monotonic()
            logger.debug(f"[ROUTER] {role} → {m} ({len(messages)} messages)")
            response = await self._acomplete(**kwargs)
            elapsed_ms = int((time.monotonic() - start) * 1000)
            return RouterResponse(
                content=response.choices[0].message.content or "",
                model=m,
                tokens_used=getattr(getattr(response, "usage", None), "total_tokens", 0) or 0,
                cost=self.usage.usage.estimated_cost,
                latency_ms=elapsed_ms,
                turns=1,
            )

        return await self._with_fallback(role, model, _call)

    async def run_tool_loop(
        self,
        role: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        executor: ToolExecutor,
        max_turns: int,
        temperature: float = 0.2,
        max_tokens: int = 8192,
    ) -> RouterResponse:
        """
        Two-state tool protocol: await a response, execute any requested
        tools, resubmit. Stops when the model answers without tool calls or
        after `max_turns` tool rounds, returning whatever text is present.
        """
        model = self.select_model(role, messages)
        # Shared across the quota fallback so finished tool rounds are not replayed.
        convo = list(messages)
        start = time.monotonic()
        rounds = 0

        async def _call(m: str) -> RouterResponse:
            nonlocal rounds
            response = await self._acomplete(
                model=m, messages=convo, tools=tools,
                temperature=temperature, max_tokens=max_tokens,
            )
            while True:
                message = response.choices[0].message
                calls = getattr(message, "tool_calls", None) or []
                if not calls:
                    break
                if rounds >= max_turns:
                    logger.warning(f"[ROUTER] {role}: tool loop hit {max_turns} turns, forcing stop")
                    break
                rounds += 1

                convo.append({
                    "role": "assistant",
                    "content": message.content or "",
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                        }
                        for tc in calls
                    ],
                })

                for tc in calls:
                    name = tc.function.name
                    try:
                        args = json.loads(tc.function.arguments or "{}")
                    except json.JSONDecodeError:
                        result: dict[str, Any] = {"success": False, "error": "Invalid JSON in arguments"}
                    else:
                        logger.debug(f"[ROUTER] {role} 🛠️ {name}")
                        result = await executor(name, args)
                    convo.append({
                        "role": "tool",
                        "tool_call_id": tc.id,
                        "name": name,
                        "content": json.dumps(result, default=str),
                    })

                response = await self._acomplete(
                    model=m, messages=convo, tools=tools,
                    temperature=temperature, max_tokens=max_tokens,
                )

            return RouterResponse(
                content=response.choices[0].message.content or "",
                model=m,
                tokens_used=self.usage.usage.total_tokens,
                cost=self.usage.usage.estimated_cost,
                latency_ms=int((time.monotonic() - start) * 1000),
                turns=rounds,
            )

        return await self._with_fallback(role, model, _call)

    async def invoke(
        self,
        role: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        executor: ToolExecutor | None = None,
        max_turns: int = 8,
        grounded: bool = False,
    ) -> tuple[dict | None, RouterResponse]:
        """Call the model and extract its JSON payload (None if there is none)."""
        if tools and executor is not None:
            response = await self.run_tool_loop(role, messages, tools, executor, max_turns)
        else:
            response = await self.complete(role, messages, grounded=grounded)

        parsed = extract_json(response.content)
        if parsed is None:
            logger.debug(f"[ROUTER] {role}: no JSON payload in {len(response.content)} chars")
        return parsed, response
