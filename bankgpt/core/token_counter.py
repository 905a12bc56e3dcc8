"""
Token counting and usage tracking.

Approximates prompt sizes for budgeting and carries exact usage
reported back by the completion endpoint.
"""

from dataclasses import dataclass
from typing import Optional

# Rough English average; good enough for budget decisions
CHARS_PER_TOKEN = 4


def estimate_tokens(text: Optional[str]) -> int:
    """Estimate the token count of a text blob.

    Args:
        text: Text to measure (None is treated as empty)

    Returns:
        Non-negative token estimate
    """
    if not text:
        return 0
    return len(text) // CHARS_PER_TOKEN


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as reported by the completion endpoint.
    """
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens
