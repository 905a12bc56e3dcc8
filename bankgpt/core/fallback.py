"""
Canned advisor replies.

Used when the completion endpoint stays unavailable after retries, so
the user still gets a useful banking answer instead of an error.
"""

import re
from typing import Dict, Pattern, Tuple

DEGRADED_NOTICE = (
    "Our AI advisor is temporarily unavailable, so here is some general guidance:\n\n"
)

GENERIC_REPLY = (
    "I can't give a personalized answer right now. For detailed help, please try "
    "again in a few minutes or speak with one of our banking specialists."
)

# Checked in order; first match wins.
CANNED_REPLIES: Tuple[Tuple[Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), reply) for pattern, reply in (
        (
            r"\b(hello|hi|hey|good (morning|afternoon|evening))\b",
            "Hello! I'm your AI banking advisor. How can I help with your finances today?",
        ),
        (
            r"\b(savings?|save|interest rate|emergency fund|deposit)\b",
            "**Savings basics**\n\n"
            "1. Keep 3-6 months of expenses in an emergency fund\n"
            "2. Compare high-yield savings accounts by APY and fees\n"
            "3. Automate a transfer to savings on payday",
        ),
        (
            r"\b(credit( card| score)?|fico)\b",
            "**Building credit**\n\n"
            "1. Pay every bill on time\n"
            "2. Keep card utilization below 30%\n"
            "3. Avoid opening many new accounts at once",
        ),
        (
            r"\b(invest\w*|stocks?|bonds?|portfolio|retire\w*|401k)\b",
            "**Investing basics**\n\n"
            "1. Start with low-cost diversified index funds\n"
            "2. Use tax-advantaged retirement accounts first\n"
            "3. Invest regularly and think long term",
        ),
        (
            r"\b(budget\w*|spending|expenses?)\b",
            "**Budgeting**\n\n"
            "Try the 50/30/20 rule: 50% needs, 30% wants, 20% savings and debt repayment.",
        ),
        (
            r"\b(loans?|mortgage|borrow\w*|debt)\b",
            "**Borrowing**\n\n"
            "1. Compare APR, not just the monthly payment\n"
            "2. Pay down high-interest debt first\n"
            "3. Check for prepayment penalties before signing",
        ),
        (
            r"\b(thank you|thanks|appreciate)\b",
            "You're welcome! Is there anything else I can help you with?",
        ),
    )
)


def canned_reply(message: str) -> str:
    """Pick a static reply for message by keyword match."""
    for pattern, reply in CANNED_REPLIES:
        if pattern.search(message):
            return reply
    return GENERIC_REPLY


def degraded_reply(message: str) -> str:
    """Canned reply prefixed with the service notice."""
    return DEGRADED_NOTICE + canned_reply(message)
