"""
Multi-provider LLM decision sources

All clients expose:
- generate_directives(perception) -> dict with a "directives" list
- generate_action(perception, unit_type) -> dict describing one unit action
- test_connection() -> (ok: bool, message: str)

SDK failures are translated into the errors in rtscom.ai.errors so callers
never need to know which provider is behind a source.
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from .errors import (
    DecisionSourceError,
    DecisionSourceUnavailable,
    MalformedResponseError,
    RateLimitedError,
)
from .prompts import ACTION_TOOL, DIRECTIVE_TOOL, commander_system_prompt, unit_system_prompt

logger = logging.getLogger("rtscom.ai.providers")

DEFAULT_RETRY_AFTER = 60.0
ACTION_MAX_TOKENS = 200

# Out of credits, bad key, forbidden: retrying will not help
PERMANENT_STATUSES = (400, 401, 403)


def _retry_after_seconds(headers: Any, default: float = DEFAULT_RETRY_AFTER) -> float:
    """Read a retry-after header in seconds, falling back to the default"""
    if headers is None:
        return default
    value = headers.get("retry-after")
    if value is None:
        return default
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return default


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _parse_json_payload(content: str, token_usage: Dict[str, int], provider: str) -> Dict[str, Any]:
    """
    Parse a JSON object response and attach metadata

    Raises:
        MalformedResponseError: If the content is not a JSON object
    """
    try:
        parsed = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as e:
        logger.error("%s JSON parsing failed: %s", provider, e)
        logger.error("Response content: %s...", content[:200])
        raise MalformedResponseError(f"{provider} returned invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError(f"{provider} returned {type(parsed).__name__}, expected an object")

    parsed["__raw_text"] = content
    parsed["__token_usage"] = token_usage
    return parsed


class BaseLLMClient:
    """
    Common behaviour for remote decision sources

    Tracks a client-side rate-limit window: after a 429 every call fails fast
    with RateLimitedError until the provider's retry-after has elapsed.
    """

    provider_name = "base"

    def __init__(self):
        self.model = None
        self._backoff_until = 0.0

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def test_connection(self) -> Tuple[bool, str]:
        raise NotImplementedError

    @property
    def rate_limited(self) -> bool:
        return time.monotonic() < self._backoff_until

    def _check_backoff(self):
        remaining = self._backoff_until - time.monotonic()
        if remaining > 0:
            raise RateLimitedError(
                f"{self.provider_name} rate limited, retry in {remaining:.0f}s",
                retry_after=remaining,
            )

    def _start_backoff(self, retry_after: float) -> RateLimitedError:
        self._backoff_until = time.monotonic() + retry_after
        logger.warning("%s rate limited - backing off for %.0fs", self.provider_name, retry_after)
        return RateLimitedError(f"{self.provider_name} rate limited", retry_after=retry_after)

    def _error_for_status(self, status: Optional[int], message: str) -> DecisionSourceError:
        if status in PERMANENT_STATUSES:
            logger.error("%s rejected the request (%s): %s - disabling", self.provider_name, status, message)
            return DecisionSourceUnavailable(f"{self.provider_name} API error {status}: {message}")
        logger.warning("%s API error %s: %s", self.provider_name, status, message)
        return DecisionSourceError(f"{self.provider_name} API error {status}: {message}")


class AnthropicLLMClient(BaseLLMClient):
    """
    Anthropic client using forced tool use

    Directives come back as the input of an issue_directives tool call and
    unit actions as the input of a take_action tool call.
    """

    provider_name = "anthropic"

    def __init__(self, api_key: str, model: str, endpoint: Optional[str] = None, timeout: float = 10,
                 max_output_tokens: int = 500):
        import anthropic
        super().__init__()
        kwargs = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
        if endpoint:
            kwargs["base_url"] = endpoint
        self.client = anthropic.AsyncAnthropic(**kwargs)
        self.sdk = anthropic
        self.model = model
        self.max_output_tokens = max_output_tokens
        logger.info("Anthropic client initialized (model: %s, timeout: %ss)", model, timeout)

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        resp = await self._create(commander_system_prompt(use_tool=True), perception, DIRECTIVE_TOOL,
                                  self.max_output_tokens)
        payload = self._tool_input(resp, DIRECTIVE_TOOL["name"])
        payload["__token_usage"] = self._token_usage(resp)
        logger.info("Anthropic issued %d directives", len(payload.get("directives") or []))
        return payload

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        resp = await self._create(unit_system_prompt(unit_type, use_tool=True), perception, ACTION_TOOL,
                                  min(self.max_output_tokens, ACTION_MAX_TOKENS))
        payload = self._tool_input(resp, ACTION_TOOL["name"])
        payload["__token_usage"] = self._token_usage(resp)
        return payload

    async def _create(self, system: str, user_prompt: str, tool: Dict[str, Any], max_tokens: int):
        self._check_backoff()
        sdk = self.sdk
        logger.debug("ANTHROPIC REQUEST (%d chars):\n%s", len(user_prompt), user_prompt)
        try:
            return await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
                messages=[{"role": "user", "content": user_prompt}],
            )
        except sdk.RateLimitError as e:
            raise self._start_backoff(_retry_after_seconds(e.response.headers)) from e
        except sdk.APIStatusError as e:
            raise self._error_for_status(e.status_code, str(e)) from e
        except sdk.APIConnectionError as e:
            raise DecisionSourceError(f"anthropic request failed: {e}", status=None) from e

    def _tool_input(self, resp, tool_name: str) -> Dict[str, Any]:
        for block in resp.content or []:
            if getattr(block, "type", None) == "tool_use" and getattr(block, "name", None) == tool_name:
                if not isinstance(block.input, dict):
                    raise MalformedResponseError(f"{tool_name} input is not an object")
                return dict(block.input)
        raise MalformedResponseError(f"Anthropic response contained no {tool_name} tool call")

    def _token_usage(self, resp) -> Dict[str, int]:
        usage = getattr(resp, "usage", None)
        if not usage:
            return {}
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        logger.info("Anthropic token usage: %d input, %d output", input_tokens, output_tokens)
        return {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        }

    async def test_connection(self) -> Tuple[bool, str]:
        try:
            resp = await self.client.messages.create(
                model=self.model,
                max_tokens=20,
                messages=[{"role": "user", "content": "Hello, confirm connectivity."}],
            )
        except self.sdk.APIError as e:
            return False, str(e)
        text = "".join(p.text for p in resp.content if hasattr(p, "text")) if resp.content else ""
        return True, text.strip()


class OpenAILLMClient(BaseLLMClient):
    """OpenAI Chat Completions client in JSON-object mode"""

    provider_name = "openai"

    def __init__(self, api_key: str, model: str, endpoint: Optional[str] = None, timeout: float = 10,
                 max_output_tokens: int = 500):
        import openai
        super().__init__()
        kwargs = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
        if endpoint:
            kwargs["base_url"] = endpoint
        self.client = openai.AsyncOpenAI(**kwargs)
        self.sdk = openai
        self.model = model
        self.max_output_tokens = max_output_tokens
        logger.info("%s client initialized (model: %s, timeout: %ss)", self.provider_name, model, timeout)

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        content, token_usage = await self._complete(commander_system_prompt(use_tool=False), perception,
                                                    self.max_output_tokens)
        payload = _parse_json_payload(content, token_usage, self.provider_name)
        logger.info("%s issued %d directives", self.provider_name, len(payload.get("directives") or []))
        return payload

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        content, token_usage = await self._complete(unit_system_prompt(unit_type, use_tool=False), perception,
                                                    min(self.max_output_tokens, ACTION_MAX_TOKENS))
        return _parse_json_payload(content, token_usage, self.provider_name)

    async def _complete(self, system: str, user_prompt: str, max_tokens: int) -> Tuple[str, Dict[str, int]]:
        self._check_backoff()
        sdk = self.sdk
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                max_tokens=max_tokens,
                temperature=0.4,
            )
        except sdk.RateLimitError as e:
            raise self._start_backoff(_retry_after_seconds(e.response.headers)) from e
        except sdk.APIStatusError as e:
            raise self._error_for_status(e.status_code, str(e)) from e
        except sdk.APIConnectionError as e:
            raise DecisionSourceError(f"{self.provider_name} request failed: {e}", status=None) from e

        content = (resp.choices[0].message.content or "") if resp.choices else ""

        token_usage = {}
        if getattr(resp, "usage", None):
            token_usage = {
                "input_tokens": getattr(resp.usage, "prompt_tokens", 0) or 0,
                "output_tokens": getattr(resp.usage, "completion_tokens", 0) or 0,
                "total_tokens": getattr(resp.usage, "total_tokens", 0) or 0,
            }
            logger.info("%s token usage: %d input, %d output", self.provider_name,
                        token_usage["input_tokens"], token_usage["output_tokens"])
        return content, token_usage

    async def test_connection(self) -> Tuple[bool, str]:
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "Hello, confirm connectivity."}],
                max_tokens=20,
            )
        except self.sdk.APIError as e:
            return False, str(e)
        return True, (resp.choices[0].message.content or "").strip()


class DeepSeekLLMClient(OpenAILLMClient):
    """DeepSeek is OpenAI-compatible; use the OpenAI client with its base_url."""

    provider_name = "deepseek"
    DEFAULT_ENDPOINT = "https://api.deepseek.com"

    def __init__(self, api_key: str, model: str, endpoint: Optional[str] = None, timeout: float = 10,
                 max_output_tokens: int = 500):
        super().__init__(api_key, model, endpoint=endpoint or self.DEFAULT_ENDPOINT, timeout=timeout,
                         max_output_tokens=max_output_tokens)


class GeminiLLMClient(BaseLLMClient):
    """Gemini client using the google-genai async API with a JSON mime type"""

    provider_name = "gemini"

    def __init__(self, api_key: str, model: str, endpoint: Optional[str] = None, timeout: float = 10,
                 max_output_tokens: int = 500):
        from google import genai
        from google.genai import errors, types
        super().__init__()
        self.types = types
        self.errors = errors
        self.model = model
        self.max_output_tokens = max_output_tokens

        # HttpOptions timeout is in milliseconds
        http_options = types.HttpOptions(timeout=int(timeout * 1000))
        if endpoint and endpoint.strip():
            http_options = types.HttpOptions(timeout=int(timeout * 1000), base_url=endpoint)
            logger.info("Gemini client initialized with custom endpoint: %s", endpoint)
        self.client = genai.Client(api_key=api_key, http_options=http_options)
        logger.info("Gemini client initialized (model: %s, timeout: %ss)", model, timeout)

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        content, token_usage = await self._generate(commander_system_prompt(use_tool=False), perception,
                                                    self.max_output_tokens)
        payload = _parse_json_payload(content, token_usage, self.provider_name)
        logger.info("Gemini issued %d directives", len(payload.get("directives") or []))
        return payload

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        content, token_usage = await self._generate(unit_system_prompt(unit_type, use_tool=False), perception,
                                                    min(self.max_output_tokens, ACTION_MAX_TOKENS))
        return _parse_json_payload(content, token_usage, self.provider_name)

    async def _generate(self, system: str, user_prompt: str, max_tokens: int) -> Tuple[str, Dict[str, int]]:
        self._check_backoff()
        config = self.types.GenerateContentConfig(
            system_instruction=system,
            response_mime_type="application/json",
            max_output_tokens=max_tokens,
            temperature=0.4,
        )
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=config,
            )
        except self.errors.APIError as e:
            if e.code == 429:
                raise self._start_backoff(DEFAULT_RETRY_AFTER) from e
            raise self._error_for_status(e.code, e.message or str(e)) from e

        token_usage = {}
        usage = getattr(resp, "usage_metadata", None)
        if usage:
            input_tokens = getattr(usage, "prompt_token_count", 0) or 0
            output_tokens = getattr(usage, "candidates_token_count", 0) or 0
            token_usage = {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": getattr(usage, "total_token_count", 0) or input_tokens + output_tokens,
            }
            logger.info("Gemini token usage: %d input, %d output", input_tokens, output_tokens)
        return resp.text or "", token_usage

    async def test_connection(self) -> Tuple[bool, str]:
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents="Hello, confirm connectivity.",
            )
        except self.errors.APIError as e:
            return False, str(e)
        return True, (resp.text or "").strip()


class LocalDecisionSource(BaseLLMClient):
    """Placeholder for local/assistant-less mode. Every call reports 503."""

    provider_name = "local"

    def __init__(self):
        super().__init__()
        self.model = "local"

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        raise DecisionSourceUnavailable()

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        raise DecisionSourceUnavailable()

    async def test_connection(self) -> Tuple[bool, str]:
        return True, "Local mode (no external LLM)"
