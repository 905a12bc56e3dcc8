"""
Banking advisor chat flow.

Composes the cache, context assembler, completion gateway and cost
tracker into a single request-per-call operation. Only the completion
call may fail the request; cache, store and ledger problems are logged
and the flow continues without them.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..config.loader import AdvisorConfig
from ..core.cache import ResponseCache, cache_key
from ..core.context import assemble_context
from ..core.cost_tracker import BudgetAlert, CostTracker
from ..core.errors import BankGPTError, MalformedResponse
from ..core.fallback import degraded_reply
from ..core.guardrails import GenerationPlan, plan_generation
from ..core.locks import KeyedLock
from ..core.rate_limit import RateLimiter
from ..core.token_counter import TokenUsage
from ..core.validation import validate_conversation_id, validate_request
from ..storage.cache_store import InMemoryCacheBackend, SQLiteCacheBackend
from ..storage.models import ConversationTurn, Role
from ..storage.repository import (
    ConversationRepository,
    UsageRepository,
    initialize_schema,
    insert_usage_record,
)
from .openai_client import CompletionGateway, CompletionResult

logger = logging.getLogger(__name__)

SERVICE_NAME = "BankGPT"
SERVICE_VERSION = "1.0.0"

NO_USAGE = TokenUsage(prompt_tokens=0, completion_tokens=0)


@dataclass(frozen=True)
class ChatResponse:
    """Outbound chat response."""
    response_text: str
    usage: TokenUsage
    model: Optional[str] = None
    cached: bool = False
    degraded: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "responseText": self.response_text,
            "usage": {
                "promptTokens": self.usage.prompt_tokens,
                "completionTokens": self.usage.completion_tokens,
                "totalTokens": self.usage.total_tokens,
            },
            "model": self.model,
            "cached": self.cached,
            "degraded": self.degraded,
        }


class BankAdvisor:
    """Chat-completion proxy for the banking advisor.

    Requests for the same conversation are serialized from cache lookup
    through history append; different conversations run independently.
    """

    def __init__(
        self,
        config: Optional[AdvisorConfig] = None,
        gateway: Optional[CompletionGateway] = None,
        cache: Optional[ResponseCache] = None,
        conversations: Optional[ConversationRepository] = None,
        tracker: Optional[CostTracker] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_alert: Optional[Callable[[BudgetAlert], None]] = None
    ):
        self.config = config or AdvisorConfig()
        db_path = self.config.storage.db_path

        if conversations is None:
            initialize_schema(db_path)
            conversations = ConversationRepository(db_path)
        self.conversations = conversations

        self.gateway = gateway or CompletionGateway(
            model=self.config.models.active,
            timeout=self.config.gateway.timeout_seconds
        )
        self.cache = cache or ResponseCache(
            _build_cache_backend(self.config),
            ttl=self.config.cache.ttl_seconds
        )
        self.tracker = tracker or self._build_tracker(on_alert)
        self.rate_limiter = rate_limiter or RateLimiter(
            limit=self.config.requests.rate_limit_per_minute
        )
        self._locks = KeyedLock()
        self._sleep = sleep

    def _build_tracker(self, on_alert: Optional[Callable[[BudgetAlert], None]]) -> CostTracker:
        """Cost tracker seeded with today's and this month's ledger spend."""
        now = datetime.now()
        daily_spent = monthly_spent = 0.0
        try:
            ledger = UsageRepository(self.config.storage.db_path)
            daily_spent = ledger.get_total_cost(since=now.replace(hour=0, minute=0, second=0, microsecond=0))
            monthly_spent = ledger.get_total_cost(
                since=now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
            )
        except Exception:
            logger.warning("Could not read spend from the usage ledger, starting from zero", exc_info=True)

        return CostTracker(
            daily_budget=self.config.budget.daily,
            monthly_budget=self.config.budget.monthly,
            thresholds=self.config.budget.alert_thresholds,
            on_alert=on_alert,
            daily_spent=daily_spent,
            monthly_spent=monthly_spent
        )

    def chat(self, message: str, conversation_id: str) -> ChatResponse:
        """Answer one user message within a conversation.

        Args:
            message: User message text
            conversation_id: Identifier-safe conversation id

        Returns:
            ChatResponse (cached, live, or degraded canned reply)

        Raises:
            InvalidRequest: If the request fails validation
            RateLimited: If the caller exceeded its per-minute allowance
            UpstreamRejected: If the completion endpoint refused the request
            MalformedResponse: If the completion endpoint returned garbage
        """
        request = validate_request(
            message, conversation_id,
            max_length=self.config.requests.max_message_length
        )
        self.rate_limiter.check(request.conversation_id)

        with self._locks.hold(request.conversation_id):
            return self._chat_locked(request.message, request.conversation_id)

    def _chat_locked(self, message: str, conversation_id: str) -> ChatResponse:
        key = cache_key(message, conversation_id, self.config.cache.scope)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Cache hit for conversation %s", conversation_id)
            self._append_history(conversation_id, message, cached.text)
            return ChatResponse(response_text=cached.text, usage=NO_USAGE, cached=True)

        history = self._load_history(conversation_id)
        plan = plan_generation(
            self.tracker,
            requested_model=self.config.models.active,
            default_model=self.config.models.default,
            max_tokens=self.config.generation.max_tokens,
            degraded_max_tokens=self.config.budget.degraded_max_tokens
        )
        context = assemble_context(
            self.config.system_prompt,
            history,
            message,
            budget=self.config.history_budget,
            keep_recent=self.config.context.keep_recent,
            summarize_after=self.config.context.summarize_after
        )

        try:
            result = self._complete_with_retry(context.messages, plan)
        except MalformedResponse:
            logger.error(
                "Malformed completion response (conversation=%s, model=%s, messages=%d, ~%d tokens)",
                conversation_id, plan.model, len(context.messages), context.estimated_tokens,
                exc_info=True
            )
            raise
        if result is None:
            # Canned replies stay out of the transcript and the cache
            return ChatResponse(response_text=degraded_reply(message), usage=NO_USAGE, degraded=True)

        self._record_usage(result, conversation_id)
        self.cache.set(key, result.response_text)
        self._append_history(conversation_id, message, result.response_text)

        return ChatResponse(
            response_text=result.response_text,
            usage=result.usage,
            model=result.model,
            degraded=plan.degraded,
        )

    def _complete_with_retry(
        self,
        messages: List[ConversationTurn],
        plan: GenerationPlan
    ) -> Optional[CompletionResult]:
        """Call the gateway, retrying transient failures with backoff.

        Returns None once retries are exhausted. Non-retryable errors
        propagate immediately.
        """
        attempts = self.config.gateway.max_retries + 1
        generation = self.config.generation
        for attempt in range(1, attempts + 1):
            try:
                return self.gateway.complete(
                    messages,
                    model=plan.model,
                    max_tokens=plan.max_tokens,
                    temperature=generation.temperature,
                    presence_penalty=generation.presence_penalty,
                    frequency_penalty=generation.frequency_penalty
                )
            except BankGPTError as e:
                if not e.retryable:
                    raise
                if attempt == attempts:
                    logger.error("Completion failed after %d attempts: %s", attempts, e)
                    return None
                delay = self.config.gateway.retry_backoff_seconds * attempt
                logger.warning(
                    "Completion attempt %d/%d failed (%s), retrying in %.2fs",
                    attempt, attempts, e, delay
                )
                self._sleep(delay)
        return None

    def _load_history(self, conversation_id: str) -> List[ConversationTurn]:
        try:
            return self.conversations.load_turns(conversation_id)
        except Exception:
            logger.warning("Could not load history for %s, continuing without it", conversation_id, exc_info=True)
            return []

    def _append_history(self, conversation_id: str, message: str, reply: str) -> None:
        turns = [
            ConversationTurn(Role.USER, message),
            ConversationTurn(Role.ASSISTANT, reply),
        ]
        try:
            self.conversations.append_turns(conversation_id, turns)
        except Exception:
            logger.warning("Could not persist turns for %s", conversation_id, exc_info=True)

    def _record_usage(self, result: CompletionResult, conversation_id: str) -> None:
        try:
            record = self.tracker.record(
                result.usage, result.model,
                conversation_id=conversation_id,
                request_id=result.request_id
            )
        except Exception:
            logger.warning("Could not record cost for model %s", result.model, exc_info=True)
            return
        try:
            insert_usage_record(record, self.config.storage.db_path)
        except Exception:
            logger.warning("Could not append usage record to ledger", exc_info=True)

    def reset(self, conversation_id: str) -> int:
        """Clear a conversation's history. Returns turns removed."""
        conversation_id = validate_conversation_id(conversation_id)
        with self._locks.hold(conversation_id):
            removed = self.conversations.reset(conversation_id)
        logger.info("Reset conversation %s (%d turns removed)", conversation_id, removed)
        return removed

    def health(self) -> Dict[str, bool]:
        """Reachability of each external dependency."""
        return {
            "gateway": self.gateway.ping(),
            "cache": self.cache.ping(),
            "store": _ping_store(self.conversations),
        }

    def info(self) -> Dict[str, object]:
        return {
            "name": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "model": self.config.models.active,
            "cache_scope": self.config.cache.scope.value,
        }


def _build_cache_backend(config: AdvisorConfig):
    if config.cache.backend == "sqlite":
        return SQLiteCacheBackend(config.storage.db_path)
    return InMemoryCacheBackend()


def _ping_store(conversations: ConversationRepository) -> bool:
    try:
        return bool(conversations.ping())
    except Exception:
        logger.warning("Conversation store unreachable", exc_info=True)
        return False
