"""
Completion gateway over the OpenAI chat completions API.

Sends exactly one request per call and classifies failures into the
advisor's error taxonomy. Retry policy belongs to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

import openai
from openai import OpenAI

from ..core.errors import (
    MalformedResponse,
    UpstreamError,
    UpstreamRejected,
    UpstreamUnavailable,
)
from ..core.token_counter import TokenUsage
from ..storage.models import ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 500
DEFAULT_TEMPERATURE = 0.7
DEFAULT_PRESENCE_PENALTY = 0.1
DEFAULT_FREQUENCY_PENALTY = 0.1
DEFAULT_TIMEOUT_SECONDS = 5.0

Message = Union[ConversationTurn, Dict[str, str]]


@dataclass(frozen=True)
class CompletionResult:
    """Text and usage returned by one successful completion."""
    response_text: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str
    request_id: Optional[str] = None

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens
        )


class CompletionGateway:
    """OpenAI client wrapper with classified failures.

    The underlying client is built with max_retries=0 so each call maps
    to a single HTTP request, bounded by timeout.
    """

    def __init__(
        self,
        model: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[Any] = None
    ):
        """Initialize the gateway.

        Args:
            model: Default model identifier (required)
            timeout: Request timeout ceiling in seconds
            client: Pre-built OpenAI-compatible client (defaults to OpenAI())

        Raises:
            ValueError: If model is missing/empty or timeout is not positive
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if timeout <= 0:
            raise ValueError("timeout must be > 0")

        self.model = model
        self.timeout = timeout
        self.client = client if client is not None else OpenAI(timeout=timeout, max_retries=0)

    def complete(
        self,
        messages: Sequence[Message],
        model: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        presence_penalty: float = DEFAULT_PRESENCE_PENALTY,
        frequency_penalty: float = DEFAULT_FREQUENCY_PENALTY
    ) -> CompletionResult:
        """Send one chat completion request.

        Args:
            messages: Ordered turns or wire dicts (required)
            model: Model override for this call
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            presence_penalty: Presence penalty
            frequency_penalty: Frequency penalty

        Returns:
            CompletionResult with the response text and token usage

        Raises:
            ValueError: If messages is empty
            UpstreamUnavailable: Connection failure or timeout
            UpstreamRejected: 4xx from the endpoint
            UpstreamError: 5xx from the endpoint
            MalformedResponse: 2xx with an unusable body
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        model = model or self.model
        payload = [
            m.to_message() if isinstance(m, ConversationTurn) else m
            for m in messages
        ]

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=payload,
                max_tokens=max_tokens,
                temperature=temperature,
                presence_penalty=presence_penalty,
                frequency_penalty=frequency_penalty,
                timeout=self.timeout
            )
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            raise UpstreamUnavailable(f"Completion endpoint unreachable: {e}") from e
        except openai.APIStatusError as e:
            status = e.status_code
            if 400 <= status < 500:
                raise UpstreamRejected(f"Completion request rejected ({status}): {e}", status) from e
            raise UpstreamError(f"Completion endpoint error ({status}): {e}", status) from e
        except openai.APIResponseValidationError as e:
            raise MalformedResponse(f"Completion response failed validation: {e}") from e
        except ValueError as e:
            # 2xx whose JSON body does not decode
            raise MalformedResponse(f"Completion response is not valid JSON: {e}") from e

        return _parse_response(response, model)

    def ping(self) -> bool:
        """Whether the endpoint answers a cheap metadata request."""
        try:
            self.client.models.retrieve(self.model, timeout=self.timeout)
        except openai.OpenAIError:
            logger.warning("Completion endpoint health check failed", exc_info=True)
            return False
        return True


def _parse_response(response: Any, model: str) -> CompletionResult:
    try:
        choices = response.choices
        if not choices:
            raise MalformedResponse("Completion response has no choices")
        text = choices[0].message.content
        usage = response.usage
    except (AttributeError, IndexError, TypeError) as e:
        raise MalformedResponse(f"Completion response has unexpected shape: {e}") from e

    if not isinstance(text, str):
        raise MalformedResponse("Completion response missing message content")
    if usage is None:
        raise MalformedResponse("Completion response missing usage information")

    try:
        prompt_tokens = int(usage.prompt_tokens)
        completion_tokens = int(usage.completion_tokens)
        total_tokens = int(getattr(usage, "total_tokens", None) or prompt_tokens + completion_tokens)
    except (AttributeError, TypeError, ValueError) as e:
        raise MalformedResponse(f"Completion usage is malformed: {e}") from e

    request_id = getattr(response, "id", None)

    return CompletionResult(
        response_text=text.strip(),
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        model=model,
        request_id=request_id if isinstance(request_id, str) else None,
    )

