"""
Data models for storage layer.

Defines conversation turns and usage ledger records.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from bankgpt.core.token_counter import estimate_tokens


class Role(Enum):
    """Who a conversation turn is attributed to."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One immutable message in a conversation.

    token_count defaults to the estimator's value for text.
    """
    role: Role
    text: str
    token_count: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if self.token_count is None:
            object.__setattr__(self, "token_count", estimate_tokens(self.text))
        elif self.token_count < 0:
            raise ValueError("token_count must be >= 0")

    def to_message(self) -> Dict[str, str]:
        """Chat-completions wire form."""
        return {"role": self.role.value, "content": self.text}


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one completed upstream request.

    Append-only events that make up the cost ledger.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: float
    conversation_id: Optional[str] = None
    request_id: Optional[str] = None
