"""
Conversation context assembly.

Builds the ordered message list sent upstream: the fixed system prompt,
as much history as the token budget allows, and the new user message.

Shaping order:
1. Turn-count summarization of long transcripts
2. Oldest-first trimming until the budget is met or history runs out

No second summarization pass follows trimming: trimming only stops over
budget once history is empty, leaving nothing to summarize.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .summarizer import DEFAULT_KEEP_RECENT, DEFAULT_SUMMARIZE_AFTER, summarize_history
from .token_counter import estimate_tokens
from bankgpt.storage.models import ConversationTurn, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssembledContext:
    """Ordered request messages plus how they were shaped."""
    messages: List[ConversationTurn]
    estimated_tokens: int
    budget: int
    dropped_turns: int = 0
    summarized: bool = False

    @property
    def history(self) -> List[ConversationTurn]:
        """Turns between the system prompt and the user message."""
        return self.messages[1:-1]

    @property
    def over_budget(self) -> bool:
        return self.estimated_tokens > self.budget

    def to_messages(self) -> List[Dict[str, str]]:
        return [turn.to_message() for turn in self.messages]


def _trim_oldest(
    history: List[ConversationTurn],
    fixed_tokens: int,
    budget: int
) -> int:
    """Drop turns from the front of history until the total fits.

    Mutates history in place and returns how many turns were dropped.
    """
    running = fixed_tokens + sum(turn.token_count for turn in history)
    dropped = 0
    while running > budget and history:
        running -= history.pop(0).token_count
        dropped += 1
    return dropped


def assemble_context(
    system_prompt: str,
    history: Sequence[ConversationTurn],
    user_message: str,
    budget: int,
    keep_recent: int = DEFAULT_KEEP_RECENT,
    summarize_after: int = DEFAULT_SUMMARIZE_AFTER
) -> AssembledContext:
    """Assemble a budget-bounded request for the completion endpoint.

    The system prompt and the user message are never dropped. If they
    alone exceed the budget they are still emitted; the budget only
    limits how much history is included.

    Args:
        system_prompt: Fixed system prompt text
        history: Prior turns, oldest first (not mutated)
        user_message: New user message, emitted verbatim last
        budget: Token budget for the whole request
        keep_recent: Turns kept verbatim when summarizing
        summarize_after: Turn count that triggers summarization

    Returns:
        AssembledContext with [system, *history, user] messages
    """
    if budget < 0:
        raise ValueError("budget must be >= 0")

    system_turn = ConversationTurn(Role.SYSTEM, system_prompt)
    user_turn = ConversationTurn(Role.USER, user_message)
    fixed_tokens = system_turn.token_count + user_turn.token_count

    shaped = summarize_history(history, keep_recent, summarize_after)
    summarized = len(history) > summarize_after

    dropped = _trim_oldest(shaped, fixed_tokens, budget)

    messages = [system_turn] + shaped + [user_turn]
    estimated = sum(turn.token_count for turn in messages)

    if dropped or summarized:
        logger.debug(
            "Shaped context: kept %d history turns, dropped %d, summarized=%s, ~%d/%d tokens",
            len(shaped), dropped, summarized, estimated, budget
        )
    if estimated > budget:
        logger.info(
            "System prompt and user message alone exceed budget (~%d > %d tokens)",
            estimated, budget
        )

    return AssembledContext(
        messages=messages,
        estimated_tokens=estimated,
        budget=budget,
        dropped_turns=dropped,
        summarized=summarized,
    )
