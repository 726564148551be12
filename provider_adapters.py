"""
Provider Adapters for the Content Orchestrator
==============================================

One adapter per backend kind (OpenAI, xAI Grok, Anthropic, Gemini, Cohere)
behind a single interface. Adapters never raise for provider-side problems:
every call returns a GenerationOutcome, with failures classified into the
ErrorKind taxonomy. Adapters do not touch the usage ledger.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Type, TypeVar

import aiohttp
import anthropic
import openai
from google import genai as google_genai
from google.genai import types as genai_types

from models import ErrorKind, GenerationOptions, GenerationOutcome, ProviderDescriptor, ProviderKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

XAI_BASE_URL = "https://api.x.ai/v1"
COHERE_BASE_URL = "https://api.cohere.com/v2"

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
AUTH_STATUS_CODES = {401, 403}

AUTH_MARKERS = (
    "invalid api key",
    "incorrect api key",
    "invalid x-api-key",
    "api key not valid",
    "unauthorized",
    "authentication",
    "permission denied",
)
QUOTA_MARKERS = (
    "insufficient_quota",
    "exceeded your current quota",
    "quota exceeded",
    "billing",
    "credit balance",
)
# A 429 is a rate limit unless it names a daily or billing quota
DAILY_QUOTA_MARKERS = (
    "insufficient_quota",
    "per day",
    "perday",
    "daily",
    "billing",
    "credit balance",
)
TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "temporarily unavailable",
    "internal server error",
    "gateway",
    "rate limit",
    "overloaded",
    "service unavailable",
    "connection reset",
    "connection refused",
    "network",
)


class ProviderHTTPError(RuntimeError):
    """Raised by REST-based adapters when a backend answers with an HTTP error."""

    def __init__(self, status: int, message: str):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message


def _status_of(exc: Exception) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an SDK or transport exception onto the ErrorKind taxonomy."""
    if isinstance(exc, (asyncio.TimeoutError, openai.APITimeoutError, anthropic.APITimeoutError)):
        return ErrorKind.TIMEOUT

    status = _status_of(exc) if isinstance(exc, Exception) else None
    message = str(exc).lower()

    if status in AUTH_STATUS_CODES or any(marker in message for marker in AUTH_MARKERS):
        return ErrorKind.AUTH_FAILED
    if status == 429:
        if any(marker in message for marker in DAILY_QUOTA_MARKERS):
            return ErrorKind.QUOTA_EXHAUSTED
        return ErrorKind.PROVIDER_ERROR
    if any(marker in message for marker in QUOTA_MARKERS):
        return ErrorKind.QUOTA_EXHAUSTED
    return ErrorKind.PROVIDER_ERROR


def should_retry_exception(exc: Exception) -> bool:
    """True for transient network, rate-limit and 5xx failures."""
    if classify_exception(exc) in (ErrorKind.AUTH_FAILED, ErrorKind.QUOTA_EXHAUSTED):
        return False

    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError, OSError)):
        return True
    if isinstance(exc, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return True

    if _status_of(exc) in TRANSIENT_STATUS_CODES:
        return True

    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def normalize_usage(usage_obj: Any) -> Dict[str, Optional[int]]:
    """Extract input/output/total token counts from provider-specific usage objects."""
    if usage_obj is None:
        return {"input_tokens": 0, "output_tokens": 0, "total_tokens": None}

    def _pluck(obj: Any, *names: str) -> Optional[int]:
        for name in names:
            value = obj.get(name) if isinstance(obj, dict) else getattr(obj, name, None)
            if value is not None:
                return value
        return None

    input_tokens = _pluck(usage_obj, "prompt_tokens", "input_tokens", "prompt_token_count") or 0
    output_tokens = _pluck(usage_obj, "completion_tokens", "output_tokens", "candidates_token_count") or 0
    total_tokens = _pluck(usage_obj, "total_tokens", "total_token_count")

    return {
        "input_tokens": int(input_tokens),
        "output_tokens": int(output_tokens),
        "total_tokens": int(total_tokens) if total_tokens is not None else None,
    }


def estimate_tokens(text: str) -> int:
    """Rough token estimate (4 characters per token) for backends that omit usage."""
    return (len(text) + 3) // 4 if text else 0


class ProviderAdapter:
    """
    Base adapter. Subclasses implement ``_complete`` and may override ``_ping``.

    ``generate`` and ``test_connection`` always return within their timeout.
    Transient errors are retried inside that budget up to ``max_attempts``.
    """

    kind: ProviderKind

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        max_attempts: int = 2,
        retry_delay: float = 1.0,
    ):
        self.descriptor = descriptor
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = max(0.0, retry_delay)

    @property
    def name(self) -> str:
        return self.descriptor.name

    def configured(self) -> bool:
        return self.descriptor.has_credentials

    async def _complete(self, prompt: str, options: GenerationOptions) -> Tuple[str, Any]:
        """Perform one backend call and return ``(text, usage_object)``."""
        raise NotImplementedError

    async def _ping(self) -> None:
        await self._complete(
            "Hello",
            GenerationOptions(model=self.descriptor.model, max_tokens=5, temperature=0.0),
        )

    async def _execute_with_retries(self, operation: Callable[[], Awaitable[T]], *, action: str) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if attempt >= self.max_attempts or not should_retry_exception(exc):
                    raise
                logger.warning(
                    "Provider %s %s failed on attempt %d/%d: %s",
                    self.name, action, attempt, self.max_attempts, exc,
                )
                await asyncio.sleep(self.retry_delay)
        raise RuntimeError("unreachable")

    async def test_connection(self, timeout: float) -> bool:
        """Cheap liveness probe. Never raises."""
        if not self.configured():
            return False
        try:
            await asyncio.wait_for(self._ping(), timeout=timeout)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Connection test for %s failed: %s", self.name, exc)
            return False

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        timeout: float,
        prompt_style: Optional[str] = None,
    ) -> GenerationOutcome:
        if not self.configured():
            return GenerationOutcome.failure(
                self.name,
                ErrorKind.UNCONFIGURED,
                f"No API key set for {self.name} ({self.descriptor.api_key_env})",
                prompt_style=prompt_style,
            )

        if options.model is None:
            options = options.model_copy(update={"model": self.descriptor.model})

        started = time.perf_counter()
        try:
            text, usage = await asyncio.wait_for(
                self._execute_with_retries(lambda: self._complete(prompt, options), action="generation"),
                timeout=timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            latency_ms = (time.perf_counter() - started) * 1000
            kind = classify_exception(exc)
            if kind == ErrorKind.TIMEOUT and isinstance(exc, asyncio.TimeoutError):
                message = f"No response within {timeout:.1f}s"
            else:
                message = str(exc) or exc.__class__.__name__
            logger.warning("Provider %s generation failed (%s): %s", self.name, kind.value, message)
            return GenerationOutcome.failure(
                self.name, kind, message, latency_ms=latency_ms, prompt_style=prompt_style
            )

        latency_ms = (time.perf_counter() - started) * 1000
        text = text or ""
        if not text.strip():
            return GenerationOutcome.failure(
                self.name,
                ErrorKind.EMPTY_RESPONSE,
                "Provider returned an empty completion",
                latency_ms=latency_ms,
                prompt_style=prompt_style,
            )

        usage_data = normalize_usage(usage)
        input_tokens = usage_data["input_tokens"] or 0
        output_tokens = usage_data["output_tokens"] or 0
        if usage is None:
            input_tokens = estimate_tokens(prompt)
            output_tokens = estimate_tokens(text)
        total_tokens = usage_data["total_tokens"]
        if total_tokens is None:
            total_tokens = input_tokens + output_tokens

        return GenerationOutcome(
            provider=self.name,
            success=True,
            text=text,
            prompt_style=prompt_style,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost=round(total_tokens / 1000 * self.descriptor.cost_per_1k_tokens, 6),
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        """Release network resources held by the adapter."""
        return None


class OpenAIAdapter(ProviderAdapter):
    kind = ProviderKind.OPENAI
    default_base_url: Optional[str] = None

    def __init__(self, descriptor: ProviderDescriptor, max_attempts: int = 2, retry_delay: float = 1.0):
        super().__init__(descriptor, max_attempts, retry_delay)
        self._client: Optional[openai.AsyncOpenAI] = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            # SDK retries are disabled; retries happen inside the adapter's timeout
            self._client = openai.AsyncOpenAI(
                api_key=self.descriptor.api_key,
                base_url=self.descriptor.base_url or self.default_base_url,
                max_retries=0,
            )
        return self._client

    async def _complete(self, prompt: str, options: GenerationOptions) -> Tuple[str, Any]:
        messages = [{"role": "user", "content": prompt}]
        if options.system_prompt:
            messages.insert(0, {"role": "system", "content": options.system_prompt})

        response = await self.client.chat.completions.create(
            model=options.model or self.descriptor.model,
            messages=messages,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        if not response.choices:
            return "", getattr(response, "usage", None)
        return response.choices[0].message.content or "", getattr(response, "usage", None)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class XAIAdapter(OpenAIAdapter):
    """Grok through xAI's OpenAI-compatible endpoint."""

    kind = ProviderKind.XAI
    default_base_url = XAI_BASE_URL


class AnthropicAdapter(ProviderAdapter):
    kind = ProviderKind.ANTHROPIC

    def __init__(self, descriptor: ProviderDescriptor, max_attempts: int = 2, retry_delay: float = 1.0):
        super().__init__(descriptor, max_attempts, retry_delay)
        self._client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.descriptor.api_key, max_retries=0)
        return self._client

    async def _complete(self, prompt: str, options: GenerationOptions) -> Tuple[str, Any]:
        create_params: Dict[str, Any] = {
            "model": options.model or self.descriptor.model,
            "max_tokens": options.max_tokens,
            "temperature": min(options.temperature, 1.0),
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.system_prompt and options.system_prompt.strip():
            create_params["system"] = options.system_prompt

        response = await self.client.messages.create(**create_params)

        # Skip non-text blocks (tool use, thinking)
        text_parts = [
            block.text
            for block in (response.content or [])
            if getattr(block, "type", None) == "text" and getattr(block, "text", None)
        ]
        return "".join(text_parts), getattr(response, "usage", None)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class GeminiAdapter(ProviderAdapter):
    kind = ProviderKind.GEMINI

    def __init__(self, descriptor: ProviderDescriptor, max_attempts: int = 2, retry_delay: float = 1.0):
        super().__init__(descriptor, max_attempts, retry_delay)
        self._client: Optional[google_genai.Client] = None

    @property
    def client(self) -> google_genai.Client:
        if self._client is None:
            self._client = google_genai.Client(api_key=self.descriptor.api_key)
        return self._client

    async def _complete(self, prompt: str, options: GenerationOptions) -> Tuple[str, Any]:
        generate_config = genai_types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            system_instruction=options.system_prompt or None,
        )
        response = await self.client.aio.models.generate_content(
            model=options.model or self.descriptor.model,
            contents=prompt,
            config=generate_config,
        )

        usage = getattr(response, "usage_metadata", None)
        if getattr(response, "text", None):
            return response.text, usage

        # Blocked or multi-part responses
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            parts = getattr(content, "parts", None) or []
            text = "".join(part.text for part in parts if getattr(part, "text", None))
            if text:
                return text, usage
        return "", usage

    async def close(self) -> None:
        if self._client is None:
            return
        async_client = getattr(self._client, "aio", None)
        if async_client is not None and hasattr(async_client, "aclose"):
            await async_client.aclose()
        self._client = None


class CohereAdapter(ProviderAdapter):
    """Cohere chat API (v2) over plain aiohttp."""

    kind = ProviderKind.COHERE

    def __init__(self, descriptor: ProviderDescriptor, max_attempts: int = 2, retry_delay: float = 1.0):
        super().__init__(descriptor, max_attempts, retry_delay)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def endpoint(self) -> str:
        return f"{(self.descriptor.base_url or COHERE_BASE_URL).rstrip('/')}/chat"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bearer {self.descriptor.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                }
            )
        return self._session

    async def _complete(self, prompt: str, options: GenerationOptions) -> Tuple[str, Any]:
        messages = [{"role": "user", "content": prompt}]
        if options.system_prompt:
            messages.insert(0, {"role": "system", "content": options.system_prompt})

        payload = {
            "model": options.model or self.descriptor.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }

        async with self._get_session().post(self.endpoint, json=payload) as response:
            if response.status >= 400:
                error_text = await response.text()
                raise ProviderHTTPError(response.status, error_text[:500])
            data = await response.json()

        content = (data.get("message") or {}).get("content") or []
        text = "".join(
            item.get("text", "") for item in content if isinstance(item, dict) and item.get("type") == "text"
        )
        usage = (data.get("usage") or {}).get("tokens")
        return text, usage

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


ADAPTER_REGISTRY: Dict[ProviderKind, Type[ProviderAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.XAI: XAIAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
    ProviderKind.GEMINI: GeminiAdapter,
    ProviderKind.COHERE: CohereAdapter,
}


def build_adapter(
    descriptor: ProviderDescriptor,
    max_attempts: int = 2,
    retry_delay: float = 1.0,
) -> ProviderAdapter:
    adapter_cls = ADAPTER_REGISTRY[descriptor.kind]
    adapter = adapter_cls(descriptor, max_attempts=max_attempts, retry_delay=retry_delay)
    if not adapter.configured():
        logger.warning("%s API key not found (%s)", descriptor.name, descriptor.api_key_env)
    return adapter


def build_adapters(
    descriptors: Iterable[ProviderDescriptor],
    max_attempts: int = 2,
    retry_delay: float = 1.0,
) -> Dict[str, ProviderAdapter]:
    """Instantiate one adapter per descriptor, keyed by provider name."""
    adapters: Dict[str, ProviderAdapter] = {}
    for descriptor in descriptors:
        if descriptor.name in adapters:
            raise ValueError(f"Duplicate provider name '{descriptor.name}'")
        adapters[descriptor.name] = build_adapter(descriptor, max_attempts, retry_delay)
    return adapters
