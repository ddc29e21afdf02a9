from anthropic import AsyncAnthropic, APIStatusError, APIError, APIConnectionError, APITimeoutError
from typing import Optional, Dict, List, Any
import httpx

from whiteninja.core.config import settings
from whiteninja.core.exceptions import AIServiceError
from whiteninja.core.logging_config import logger

CONNECT_TIMEOUT = float(settings.CLAUDE_CONNECT_TIMEOUT)
REQUEST_TIMEOUT = float(settings.AGENT_CALL_TIMEOUT_SECONDS)
RETRYABLE_ERRORS = ['overloaded_error', 'rate_limit_error', 'api_error']


class ClaudeClient:
    """
    Claude API client used by the call envelope.

    Each generate() is a single attempt: the SDK's own retries are disabled
    because retry, backoff and timeout policy belongs to the envelope.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        client_kwargs: Dict[str, Any] = {
            "api_key": api_key if api_key is not None else settings.ANTHROPIC_API_KEY,
            "max_retries": 0,
        }

        base_url = base_url if base_url is not None else settings.ANTHROPIC_BASE_URL
        if base_url and base_url.strip():
            client_kwargs["base_url"] = base_url.strip()
            logger.info(f"Using custom Claude API base URL: {base_url}")

        client_kwargs["timeout"] = httpx.Timeout(
            connect=CONNECT_TIMEOUT,
            read=REQUEST_TIMEOUT,
            write=REQUEST_TIMEOUT,
            pool=REQUEST_TIMEOUT
        )

        self.async_client = AsyncAnthropic(**client_kwargs)
        self.model = settings.CLAUDE_MODEL
        self.suggest_model = settings.CLAUDE_SUGGEST_MODEL

        logger.info(f"Claude client initialized: models=[{self.model}, {self.suggest_model}]")

    def is_retryable_error(self, error: Exception) -> bool:
        """Check if an error is worth another attempt (overload, rate limit, network)"""
        if isinstance(error, (APIConnectionError, APITimeoutError)):
            return True

        if isinstance(error, (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)):
            return True

        if isinstance(error, (APIStatusError, APIError)):
            if hasattr(error, 'body') and isinstance(error.body, dict):
                error_type = error.body.get('error', {}).get('type', '')
                if error_type:
                    return error_type in RETRYABLE_ERRORS
            if hasattr(error, 'status_code'):
                return error.status_code in [429, 500, 502, 503, 529]

        error_str = str(error).lower()
        network_errors = ['overload', 'rate_limit', '529', '503', 'capacity',
                         'connection', 'timeout', 'network']
        return any(err in error_str for err in network_errors)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        messages: Optional[List[Dict[str, str]]] = None
    ) -> Dict[str, Any]:
        """
        Generate a response from Claude (single attempt, non-streaming)

        Returns:
            Dict with content, reasoning, token usage and metadata

        Raises:
            AIServiceError: the provider rejected or failed the request
        """
        model_name = model or self.model
        messages = list(messages or [])
        messages.append({"role": "user", "content": prompt})

        if max_tokens is None:
            max_tokens = settings.CLAUDE_MAX_TOKENS
        if temperature is None:
            temperature = settings.CLAUDE_TEMPERATURE

        logger.info(f"Claude API: model={model_name}, max_tokens={max_tokens}, prompt_len={len(prompt)}")

        try:
            response = await self.async_client.messages.create(
                model=model_name,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt or "",
                messages=messages
            )
        except (APIError, httpx.HTTPError) as e:
            retryable = self.is_retryable_error(e)
            logger.warning(f"Claude API error ({'retryable' if retryable else 'fatal'}): {type(e).__name__}: {e}")
            raise AIServiceError(f"Claude API error: {e}") from e

        text_parts = []
        reasoning_parts = []
        for block in response.content:
            block_type = getattr(block, "type", "")
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "thinking":
                reasoning_parts.append(getattr(block, "thinking", ""))

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens

        return {
            "content": "".join(text_parts),
            "reasoning": "\n".join(p for p in reasoning_parts if p),
            "model": response.model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "stop_reason": response.stop_reason,
            "id": response.id
        }


_claude_client: Optional[ClaudeClient] = None


def get_claude_client() -> ClaudeClient:
    """Shared client, created on first use"""
    global _claude_client
    if _claude_client is None:
        _claude_client = ClaudeClient()
    return _claude_client
