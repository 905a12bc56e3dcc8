"""
Inbound chat request validation.
"""

import re
from dataclasses import dataclass

from .errors import InvalidRequest

DEFAULT_MAX_MESSAGE_LENGTH = 1000
CONVERSATION_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


@dataclass(frozen=True)
class ChatRequest:
    """A validated inbound chat request."""
    message: str
    conversation_id: str


def validate_request(
    message: object,
    conversation_id: object,
    max_length: int = DEFAULT_MAX_MESSAGE_LENGTH
) -> ChatRequest:
    """Validate raw request fields.

    Surrounding whitespace is stripped from the message.

    Raises:
        InvalidRequest: If either field fails validation
    """
    if not isinstance(message, str) or not message.strip():
        raise InvalidRequest("message is required and cannot be empty")
    message = message.strip()
    if len(message) > max_length:
        raise InvalidRequest(f"message exceeds {max_length} characters")

    return ChatRequest(message=message, conversation_id=validate_conversation_id(conversation_id))


def validate_conversation_id(conversation_id: object) -> str:
    """Return conversation_id if identifier-safe, else raise InvalidRequest."""
    if not isinstance(conversation_id, str) or not CONVERSATION_ID_PATTERN.fullmatch(conversation_id):
        raise InvalidRequest(
            "conversation_id must be 1-64 characters of letters, digits, '-' or '_'"
        )
    return conversation_id
