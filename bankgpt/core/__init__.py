"""
Core modules for BankGPT.

This package contains context assembly, summarization, caching,
cost tracking and budget guardrails for the advisor chat flow.
"""
