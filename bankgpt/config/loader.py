"""
Configuration management and loading.

Every section is optional and falls back to documented defaults, but
whatever is present is validated strictly: unknown keys and wrong
types fail loudly instead of being silently ignored.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from bankgpt.core.cache import CacheScope, DEFAULT_TTL_SECONDS
from bankgpt.core.cost_tracker import DEFAULT_ALERT_THRESHOLDS
from bankgpt.core.pricing import PRICING_TABLE
from bankgpt.core.rate_limit import DEFAULT_REQUESTS_PER_MINUTE
from bankgpt.core.summarizer import DEFAULT_KEEP_RECENT, DEFAULT_SUMMARIZE_AFTER
from bankgpt.core.validation import DEFAULT_MAX_MESSAGE_LENGTH
from bankgpt.storage.db import DEFAULT_DB_PATH

CONFIG_ENV = "BANKGPT_CONFIG"

DEFAULT_SYSTEM_PROMPT = (
    "You are BankGPT, a friendly and knowledgeable banking advisor. "
    "Give clear, practical guidance on savings, credit, budgeting, loans and "
    "investing. Do not ask for or store account numbers or passwords, and "
    "recommend speaking with a licensed professional for decisions that depend "
    "on the user's full financial situation."
)


@dataclass(frozen=True)
class ModelConfig:
    """Model tiers: a cheaper default and a premium model."""
    default: str = "gpt-3.5-turbo"
    premium: str = "gpt-4"
    use_premium: bool = False

    def __post_init__(self):
        for name in (self.default, self.premium):
            if not PRICING_TABLE.supports(name):
                raise ValueError(f"Unsupported model: {name}")

    @property
    def active(self) -> str:
        return self.premium if self.use_premium else self.default


@dataclass(frozen=True)
class GenerationConfig:
    """Pass-through sampling knobs for the completion endpoint."""
    max_tokens: int = 500
    temperature: float = 0.7
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1

    def __post_init__(self):
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        for name in ("presence_penalty", "frequency_penalty"):
            if not -2 <= getattr(self, name) <= 2:
                raise ValueError(f"{name} must be between -2 and 2")


@dataclass(frozen=True)
class ContextConfig:
    """Prompt size limits and summarization policy."""
    total_tokens: int = 4096
    keep_recent: int = DEFAULT_KEEP_RECENT
    summarize_after: int = DEFAULT_SUMMARIZE_AFTER

    def __post_init__(self):
        if self.total_tokens <= 0:
            raise ValueError("total_tokens must be > 0")
        if self.keep_recent < 0:
            raise ValueError("keep_recent must be >= 0")
        if self.summarize_after < self.keep_recent + 1:
            raise ValueError("summarize_after must be > keep_recent")


@dataclass(frozen=True)
class CacheConfig:
    """Response cache settings."""
    ttl_seconds: float = DEFAULT_TTL_SECONDS
    scope: CacheScope = CacheScope.CONVERSATION
    backend: str = "sqlite"

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if self.backend not in ("memory", "sqlite"):
            raise ValueError("cache backend must be one of: ['memory', 'sqlite']")


@dataclass(frozen=True)
class BudgetConfig:
    """Budget limits for cost control."""
    daily: float = 10.0
    monthly: float = 200.0
    alert_thresholds: Tuple[int, ...] = DEFAULT_ALERT_THRESHOLDS
    degraded_max_tokens: int = 250

    def __post_init__(self):
        """Validate budget values are positive."""
        if self.daily <= 0:
            raise ValueError("daily budget must be > 0")
        if self.monthly <= 0:
            raise ValueError("monthly budget must be > 0")
        if not self.alert_thresholds or any(t <= 0 for t in self.alert_thresholds):
            raise ValueError("alert_thresholds must be positive percentages")
        if self.degraded_max_tokens <= 0:
            raise ValueError("degraded_max_tokens must be > 0")


@dataclass(frozen=True)
class GatewayConfig:
    """Timeout and caller-side retry policy for the completion endpoint."""
    timeout_seconds: float = 5.0
    max_retries: int = 2
    retry_backoff_seconds: float = 0.5

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0")


@dataclass(frozen=True)
class RequestConfig:
    """Inbound request limits."""
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    rate_limit_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE

    def __post_init__(self):
        if self.max_message_length <= 0:
            raise ValueError("max_message_length must be > 0")
        if self.rate_limit_per_minute <= 0:
            raise ValueError("rate_limit_per_minute must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class AdvisorConfig:
    """Complete advisor configuration."""
    models: ModelConfig = field(default_factory=ModelConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    requests: RequestConfig = field(default_factory=RequestConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    def __post_init__(self):
        if not self.system_prompt or not self.system_prompt.strip():
            raise ValueError("system_prompt cannot be empty")
        if self.history_budget <= 0:
            raise ValueError("context.total_tokens must exceed generation.max_tokens")

    @property
    def history_budget(self) -> int:
        """Prompt token budget: total context minus the reserved response."""
        return self.context.total_tokens - self.generation.max_tokens


_SECTIONS = {
    "models": ModelConfig,
    "generation": GenerationConfig,
    "context": ContextConfig,
    "cache": CacheConfig,
    "budget": BudgetConfig,
    "gateway": GatewayConfig,
    "requests": RequestConfig,
    "storage": StorageConfig,
}


def load_advisor_config(path: Optional[str] = None) -> AdvisorConfig:
    """Load and validate advisor configuration from a YAML file.

    Args:
        path: Path to YAML configuration file; None returns the defaults

    Returns:
        Validated AdvisorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return AdvisorConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Advisor config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return AdvisorConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = set(_SECTIONS) | {"system_prompt"}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, section_cls in _SECTIONS.items():
        if name in raw_config:
            sections[name] = _parse_section(section_cls, raw_config[name], name)

    if "system_prompt" in raw_config:
        prompt = raw_config["system_prompt"]
        if not isinstance(prompt, str):
            raise ValueError("'system_prompt' must be a string")
        sections["system_prompt"] = prompt.strip()

    return AdvisorConfig(**sections)


def _parse_section(section_cls: type, data: Any, path: str) -> Any:
    """Parse and validate one configuration section.

    Args:
        section_cls: Dataclass describing the section
        data: Raw section data
        path: Path for error messages

    Returns:
        Validated section instance

    Raises:
        ValueError: If the section is invalid
    """
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    defaults = {f.name: f.default for f in fields(section_cls)}
    unknown_keys = set(data.keys()) - set(defaults)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    values: Dict[str, Any] = {}
    for key, raw in data.items():
        values[key] = _coerce(raw, defaults[key], f"{path}.{key}")

    return section_cls(**values)


def _coerce(raw: Any, default: Any, path: str) -> Any:
    """Coerce a raw YAML value to the type of its default."""
    if isinstance(default, bool):
        if not isinstance(raw, bool):
            raise ValueError(f"'{path}' must be true or false")
        return raw
    if isinstance(default, CacheScope):
        try:
            return CacheScope(str(raw).lower())
        except ValueError:
            valid = [scope.value for scope in CacheScope]
            raise ValueError(f"'{path}' must be one of: {valid}")
    if isinstance(default, tuple):
        if not isinstance(raw, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in raw):
            raise ValueError(f"'{path}' must be a list of integers")
        return tuple(raw)
    if isinstance(default, int):
        if not isinstance(raw, int) or isinstance(raw, bool):
            raise ValueError(f"'{path}' must be an integer")
        return raw
    if isinstance(default, float):
        if not isinstance(raw, (int, float)) or isinstance(raw, bool):
            raise ValueError(f"'{path}' must be a number")
        return float(raw)
    if isinstance(default, str):
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"'{path}' must be a non-empty string")
        return raw
    raise ValueError(f"Unsupported configuration value at '{path}'")
