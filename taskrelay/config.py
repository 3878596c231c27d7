"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./taskrelay.yaml (working directory)
3. ~/.taskrelay/config.yaml (user home)

Environment variables override YAML: TASKRELAY_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file is found every section takes its defaults.

Example:
    routing:
      cache_ttl_seconds: 120
    circuit:
      failure_threshold: 3
    tenants:
      acme:
        pinned_category: writing
        disabled_skills: [browser-automation]
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from taskrelay.orchestrator.models.routing import Category, Skill

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

# Default model - can be overridden via ANTHROPIC_MODEL env var
DEFAULT_MODEL = "claude-sonnet-4-20250514"


def get_model() -> str:
    """Get the default Claude model for execution.

    Reads from ANTHROPIC_MODEL environment variable, falling back to
    the default Sonnet model if not set.

    Returns:
        Claude model identifier string.
    """
    return os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL)


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure.

    Args:
        data: Dict, list, or scalar value to process.

    Returns:
        Same structure with all string values resolved.
    """
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class AnalyzerConfig(BaseModel):
    """Request analyzer settings."""

    rule_confidence: float = Field(default=0.9, gt=0.0, le=1.0)
    classifier_max_confidence: float = Field(default=0.85, gt=0.0, le=1.0)
    max_text_length: int = Field(default=4000, ge=1)

    @model_validator(mode="after")
    def classifier_below_rules(self) -> "AnalyzerConfig":
        """Keep classifier confidence strictly below rule confidence."""
        if self.classifier_max_confidence >= self.rule_confidence:
            raise ValueError(
                "classifier_max_confidence must be lower than rule_confidence"
            )
        return self


class RoutingConfig(BaseModel):
    """Category selection settings."""

    default_category: Category = Category.DEFAULT
    rule_min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    default_prior: float = Field(default=0.25, ge=0.0)
    fallback_min_score: float = Field(default=0.3, ge=0.0)
    continuity_weight: float = Field(default=1.0, ge=0.0)
    continuity_min_score: float = Field(default=0.2, ge=0.0, le=1.0)
    cache_ttl_seconds: float = Field(default=300.0, gt=0.0)
    cache_max_entries: int = Field(default=10000, ge=1)


class SessionConfig(BaseModel):
    """Two-tier session store and continuity settings."""

    fast_ttl_seconds: float = Field(default=1800.0, gt=0.0)
    fast_tier_timeout_seconds: float = Field(default=0.05, gt=0.0)
    half_life_seconds: float = Field(default=300.0, gt=0.0)
    recency_weight: float = Field(default=0.6, ge=0.0)
    similarity_weight: float = Field(default=0.4, ge=0.0)
    follow_up_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    snapshot_turns: int = Field(default=10, ge=0)
    write_retries: int = Field(default=3, ge=0)
    write_retry_delay_seconds: float = Field(default=0.1, ge=0.0)
    write_queue_size: int = Field(default=1000, ge=1)


class CircuitConfig(BaseModel):
    """Per-target circuit breaker settings."""

    failure_threshold: int = Field(default=5, ge=1)
    failure_rate_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    min_calls: int = Field(default=10, ge=1)
    window_seconds: float = Field(default=60.0, gt=0.0)
    cooldown_seconds: float = Field(default=30.0, gt=0.0)
    cooldown_multiplier: float = Field(default=2.0, ge=1.0)
    max_cooldown_seconds: float = Field(default=600.0, gt=0.0)


class RetryConfig(BaseModel):
    """Retry/backoff settings for idempotent plans."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_delay_seconds: float = Field(default=8.0, ge=0.0)
    jitter: float = Field(default=0.0, ge=0.0, le=1.0)


class ModelPricing(BaseModel):
    """USD per million tokens."""

    input: float = 0.0
    output: float = 0.0


def _default_category_models() -> dict[Category, str]:
    return {
        Category.QUICK: "claude-haiku-4-5-20251001",
        Category.DEEP_REASONING: "claude-opus-4-1-20250805",
    }


def _default_pricing() -> dict[str, ModelPricing]:
    return {
        "claude-sonnet-4-20250514": ModelPricing(input=3.0, output=15.0),
        "claude-haiku-4-5-20251001": ModelPricing(input=1.0, output=5.0),
        "claude-opus-4-1-20250805": ModelPricing(input=15.0, output=75.0),
    }


class ExecutionConfig(BaseModel):
    """Execution backend settings."""

    backend_target: str = "anthropic"
    default_model: str = Field(default_factory=get_model)
    category_models: dict[Category, str] = Field(default_factory=_default_category_models)
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    max_tokens: int = Field(default=4096, ge=1)
    max_tool_rounds: int = Field(default=5, ge=0)
    result_summary_chars: int = Field(default=280, ge=0)
    capability_gateway_url: Optional[str] = None
    capability_timeout_seconds: float = Field(default=10.0, gt=0.0)
    pricing: dict[str, ModelPricing] = Field(default_factory=_default_pricing)

    def model_for(self, category: Category) -> str:
        """Backend model for a category, falling back to the default model."""
        return self.category_models.get(category, self.default_model)


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class TenantConfig(BaseModel):
    """Per-tenant routing overrides."""

    pinned_category: Optional[Category] = None
    disabled_skills: list[Skill] = []


class RelayConfig(BaseModel):
    """Top-level configuration for TaskRelay."""

    analyzer: AnalyzerConfig = AnalyzerConfig()
    routing: RoutingConfig = RoutingConfig()
    session: SessionConfig = SessionConfig()
    circuit: CircuitConfig = CircuitConfig()
    retry: RetryConfig = RetryConfig()
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    server: ServerConfig = ServerConfig()
    tenants: dict[str, TenantConfig] = {}
    database_url: Optional[str] = None

    def tenant(self, tenant_id: str) -> TenantConfig:
        """Overrides for a tenant, or empty overrides when unconfigured."""
        return self.tenants.get(tenant_id) or TenantConfig()


# Sections that accept TASKRELAY_<SECTION>_<KEY> overrides
_OVERRIDABLE_SECTIONS = (
    "analyzer",
    "routing",
    "session",
    "circuit",
    "retry",
    "execution",
    "server",
)


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "taskrelay.yaml",
        Path.cwd() / "taskrelay.yml",
        Path.home() / ".taskrelay" / "config.yaml",
        Path.home() / ".taskrelay" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _coerce(value: str) -> Any:
    """Coerce an env var string to int, float, bool, or keep as string."""
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply TASKRELAY_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix. For example,
    ``TASKRELAY_CIRCUIT_FAILURE_THRESHOLD`` maps to section ``circuit``,
    field ``failure_threshold``. ``TASKRELAY_DATABASE_URL`` sets the
    top-level database URL.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    prefix = "TASKRELAY_"
    known_sections = sorted(_OVERRIDABLE_SECTIONS, key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        if suffix == "database_url":
            data["database_url"] = value
            continue
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            data[matched_section][matched_field] = _coerce(value)
    return data


def load_config(config_path: str | None = None) -> RelayConfig:
    """Load TaskRelay configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.taskrelay/).

    Returns:
        Parsed and validated RelayConfig. Defaults when no file is found.

    Raises:
        FileNotFoundError: If an explicit config path does not exist.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is None:
        logger.info("No config file found, using defaults")
    else:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    # Resolve ${VAR} references
    data = _resolve_env_vars_recursive(raw_data)

    # Apply TASKRELAY_ env var overrides
    data = _apply_env_overrides(data)

    # Validate with Pydantic
    return RelayConfig(**data)
