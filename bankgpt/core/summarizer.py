"""
History summarization.

Collapses older conversation turns into a single synthetic system turn
naming the banking topics they covered.
"""

from typing import Dict, List, Sequence, Tuple

from bankgpt.storage.models import ConversationTurn, Role

DEFAULT_KEEP_RECENT = 2
DEFAULT_SUMMARIZE_AFTER = 20

# Topic -> keywords. A topic is detected if any keyword appears as a
# case-insensitive substring of an older turn.
TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "savings": ("saving", "savings account", "interest rate", "deposit", "emergency fund"),
    "credit": ("credit", "credit card", "credit score", "fico"),
    "investment": ("invest", "stock", "bond", "portfolio", "mutual fund"),
    "budget": ("budget", "spending", "expense", "50/30/20"),
    "loans": ("loan", "borrow", "debt"),
    "mortgage": ("mortgage", "home loan", "down payment", "refinanc"),
    "retirement": ("retire", "401k", "401(k)", "roth", "pension"),
}


def detect_topics(turns: Sequence[ConversationTurn]) -> List[str]:
    """Return topics mentioned across turns, in TOPIC_KEYWORDS order."""
    haystack = "\n".join(turn.text.lower() for turn in turns)
    return [
        topic for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in haystack for keyword in keywords)
    ]


def build_summary_turn(turns: Sequence[ConversationTurn]) -> ConversationTurn:
    """Build the synthetic system turn standing in for turns."""
    topics = detect_topics(turns)
    if topics:
        text = f"Earlier in this conversation the user discussed: {', '.join(topics)}."
    else:
        text = f"Earlier in this conversation there were {len(turns)} general messages."
    return ConversationTurn(Role.SYSTEM, text)


def summarize_history(
    turns: Sequence[ConversationTurn],
    keep_recent: int = DEFAULT_KEEP_RECENT,
    summarize_after: int = DEFAULT_SUMMARIZE_AFTER
) -> List[ConversationTurn]:
    """Collapse older turns once the transcript grows past a threshold.

    Args:
        turns: Ordered conversation turns (not mutated)
        keep_recent: Number of most recent turns kept verbatim
        summarize_after: Turn count above which summarization happens

    Returns:
        New list: the turns unchanged, or [summary] + last keep_recent turns
    """
    if keep_recent < 0:
        raise ValueError("keep_recent must be >= 0")

    if len(turns) <= summarize_after:
        return list(turns)

    split = len(turns) - keep_recent
    older, recent = turns[:split], turns[split:]
    return [build_summary_turn(older)] + list(recent)
