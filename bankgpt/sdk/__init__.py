"""
SDK for BankGPT.

Provides the completion gateway and the advisor chat flow.
"""

from .advisor import BankAdvisor, ChatResponse
from .openai_client import CompletionGateway, CompletionResult

__all__ = ["BankAdvisor", "ChatResponse", "CompletionGateway", "CompletionResult"]
