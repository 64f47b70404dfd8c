"""Base class for agents that stream completions from the generation service"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from siteforge.config.generator_config import RETRYABLE_STATUS_CODES

logger = logging.getLogger(__name__)


class AgentError(Exception):
    """Base exception for agent errors"""
    pass


@dataclass
class CompletionResult:
    """Text assembled from one streamed completion"""
    text: str
    finish_reason: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "length"


class BaseAgent:
    """Base class for all agents: streamed chat completions with timeout and retry"""

    # Initializes base agent with OpenAI client and model config.
    # Timeout covers one whole streamed call; retries only apply to overload statuses.
    def __init__(
        self,
        client: OpenAI,
        model: str = "gpt-4.1",
        temperature: float = 0.7,
        agent_name: str = "Agent",
        timeout: float = 180.0,
        max_retries: int = 2,
        retry_backoff: float = 3.0,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.agent_name = agent_name
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    def _consume_stream(self, kwargs: Dict[str, Any]) -> CompletionResult:
        """Runs in a worker thread: opens the stream and drains it."""
        stream = self.client.chat.completions.create(**kwargs)
        parts: List[str] = []
        finish_reason: Optional[str] = None
        prompt_tokens = 0
        completion_tokens = 0

        for chunk in stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                prompt_tokens = usage.prompt_tokens or 0
                completion_tokens = usage.completion_tokens or 0
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = getattr(choice, "delta", None)
            if delta is not None and delta.content:
                parts.append(delta.content)
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        if not finish_reason:
            raise AgentError("Stream ended without a completion signal (no finish_reason)")
        return CompletionResult(
            text="".join(parts),
            finish_reason=finish_reason,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    async def _stream_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> CompletionResult:
        """
        Common streamed call logic

        Args:
            system_prompt: System prompt content
            user_prompt: User message content
            max_tokens: Output token ceiling for this call
            model: Optional model override (defaults to the agent's model)
            temperature: Optional temperature override
            top_p: Optional nucleus sampling override

        Returns:
            CompletionResult with the assembled text and token usage

        Raises:
            AgentError: timeout, malformed stream, non-retryable or exhausted service errors
        """
        kwargs: Dict[str, Any] = {
            "model": model or self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature if temperature is not None else self.temperature,
            "max_tokens": max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if top_p is not None:
            kwargs["top_p"] = top_p

        for attempt in range(self.max_retries + 1):
            logger.info(
                f"[{self.agent_name}] Calling {kwargs['model']} | "
                f"temperature={kwargs['temperature']} | "
                f"max_tokens={max_tokens} | "
                f"timeout={self.timeout}s | "
                f"attempt={attempt + 1}/{self.max_retries + 1}"
            )
            try:
                result = await asyncio.wait_for(
                    asyncio.to_thread(self._consume_stream, kwargs),
                    timeout=self.timeout
                )
            except asyncio.TimeoutError:
                error_msg = f"Agent timeout after {self.timeout}s"
                logger.error(f"[{self.agent_name}] ✗ {error_msg} | model: {kwargs['model']}")
                raise AgentError(error_msg)
            except AgentError as e:
                logger.error(f"[{self.agent_name}] ✗ Malformed stream | model: {kwargs['model']} | error: {e}")
                raise
            except openai.APIStatusError as e:
                if e.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                    delay = self.retry_backoff * (attempt + 1)
                    logger.warning(
                        f"[{self.agent_name}] ⚠ Service returned {e.status_code}, retrying in {delay:.0f}s | "
                        f"attempt: {attempt + 1}/{self.max_retries}"
                    )
                    await asyncio.sleep(delay)
                    continue
                error_msg = f"Generation service error {e.status_code}: {e.message}"
                logger.error(f"[{self.agent_name}] ✗ {error_msg} | model: {kwargs['model']}")
                raise AgentError(error_msg)
            except Exception as e:
                error_msg = f"Agent call failed: {str(e)}"
                logger.error(
                    f"[{self.agent_name}] ✗ {error_msg} | "
                    f"error_type: {type(e).__name__} | "
                    f"model: {kwargs['model']}",
                    exc_info=True
                )
                raise AgentError(error_msg)

            if result.truncated:
                logger.warning(
                    f"[{self.agent_name}] ⚠ Output hit max_tokens={max_tokens} (finish_reason=length), "
                    f"response may be truncated"
                )
            logger.info(
                f"[{self.agent_name}] ✓ Response received successfully | "
                f"tokens: {result.prompt_tokens + result.completion_tokens} "
                f"(prompt: {result.prompt_tokens}, completion: {result.completion_tokens}) | "
                f"response_length: {len(result.text)} chars"
            )
            return result

        # Loop always returns or raises; kept for type checkers
        raise AgentError("Generation service retries exhausted")
