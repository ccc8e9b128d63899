"""
Configuration Management
========================

Centralized configuration for the agent. Every environment variable is
read, validated and typed here, once, at startup.

Usage:
    from src.utils.config import get_config

    config = get_config()
    print(config.llm.provider, config.llm.model)
    print(config.harbor.permission_timeout_seconds)

Providers:
    All three supported providers speak the OpenAI chat-completions
    protocol; only the base URL and the API-key requirement differ.

    openai      https://api.openai.com/v1       key required
    openrouter  https://openrouter.ai/api/v1    key required
    ollama      http://localhost:11434/v1       no key
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from src.utils.logger import Logger

logger = Logger("Config")

OPENAI_URL = "https://api.openai.com/v1"
OPENROUTER_URL = "https://openrouter.ai/api/v1"
OLLAMA_DEFAULT_URL = "http://localhost:11434/v1"

SUPPORTED_PROVIDERS = ("openai", "openrouter", "ollama")

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "openrouter": "openai/gpt-4o-mini",
    "ollama": "llama3",
}


def _required(name: str) -> str:
    """
    Get a required environment variable.

    Raises:
        ValueError: If the variable is not set
    """
    value = os.getenv(name)
    if not value:
        raise ValueError(
            f"Missing required environment variable: {name}\n"
            f"Please ensure {name} is set in your .env file."
        )
    return value


def _optional(name: str, default: str) -> str:
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """Get an integer variable, falling back to the default if invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    """Get a float variable, falling back to the default if invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name} is not a valid number, using default: {default}")
        return default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class LLMConfig:
    """Chat-completion provider settings."""
    provider: str          # openai | openrouter | ollama
    api_key: str | None    # None is only valid for ollama
    model: str
    base_url: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


@dataclass(frozen=True)
class AgentConfig:
    """Agent loop settings."""
    max_iterations: int      # Hard ceiling on model requests per run
    page_context_chars: int  # Page markdown included in the system prompt


@dataclass(frozen=True)
class HarborConfig:
    """Permission system settings."""
    policy_file: Path
    permission_timeout_seconds: float  # Unanswered prompts become deny
    session_grant_hours: int           # Lifetime of an allow-session grant
    action_log_cap: int                # Newest entries kept in memory
    action_log_file: Path | None       # Optional JSONL audit trail
    purge_interval_minutes: int        # Janitor interval for expired grants


@dataclass(frozen=True)
class BrowserConfig:
    """Local browser-extension bridge settings."""
    bridge_url: str
    timeout_seconds: float
    tab_load_timeout_seconds: float


@dataclass(frozen=True)
class DataConfig:
    """Where cached pages and price watches live."""
    directory: Path

    @property
    def page_cache_file(self) -> Path:
        return self.directory / "page_cache.json"

    @property
    def price_watch_file(self) -> Path:
        return self.directory / "price_watches.json"


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.llm.model
        config.harbor.policy_file
    """
    llm: LLMConfig
    agent: AgentConfig
    harbor: HarborConfig
    browser: BrowserConfig
    data: DataConfig
    log_level: str


def build_base_url(provider: str, custom_base_url: str | None = None) -> str:
    """
    Resolve the chat-completions base URL for a provider.

    OpenAI and OpenRouter have fixed endpoints. Ollama and unknown
    providers honour a custom URL.
    """
    if provider == "openrouter":
        return OPENROUTER_URL
    if provider == "openai":
        return custom_base_url or OPENAI_URL
    if provider == "ollama":
        return custom_base_url or OLLAMA_DEFAULT_URL
    return custom_base_url or OPENAI_URL


def load_llm_config() -> LLMConfig:
    """
    Read the LLM_* variables.

    Raises:
        ValueError: On an unsupported provider or a missing API key
    """
    provider = _optional("LLM_PROVIDER", "openai").lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported LLM_PROVIDER '{provider}'. "
            f"Choose one of: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    # Ollama runs locally and needs no key
    api_key = os.getenv("LLM_API_KEY") if provider == "ollama" else _required("LLM_API_KEY")

    return LLMConfig(
        provider=provider,
        api_key=api_key,
        model=_optional("LLM_MODEL", DEFAULT_MODELS[provider]),
        base_url=build_base_url(provider, os.getenv("LLM_BASE_URL")),
        temperature=_optional_float("LLM_TEMPERATURE", 0.4),
        max_tokens=_optional_int("LLM_MAX_TOKENS", 4096),
        timeout_seconds=_optional_float("LLM_TIMEOUT_SECONDS", 60.0),
    )


def load_config() -> Config:
    """
    Load and validate all configuration from the environment.

    Raises:
        ValueError: If required configuration is missing
    """
    load_dotenv()

    data_dir = Path(_optional("FOXAGENT_DATA_DIR", str(Path.home() / ".foxagent")))
    log_file = os.getenv("HARBOR_ACTION_LOG_FILE")

    return Config(
        llm=load_llm_config(),
        agent=AgentConfig(
            max_iterations=_optional_int("AGENT_MAX_ITERATIONS", 10),
            page_context_chars=_optional_int("AGENT_PAGE_CONTEXT_CHARS", 3000),
        ),
        harbor=HarborConfig(
            policy_file=Path(_optional("HARBOR_POLICY_FILE", str(data_dir / "harbor_policy.json"))),
            permission_timeout_seconds=_optional_float("HARBOR_PERMISSION_TIMEOUT_SECONDS", 60.0),
            session_grant_hours=_optional_int("HARBOR_SESSION_GRANT_HOURS", 24),
            action_log_cap=_optional_int("HARBOR_ACTION_LOG_CAP", 100),
            action_log_file=Path(log_file) if log_file else None,
            purge_interval_minutes=_optional_int("HARBOR_PURGE_INTERVAL_MINUTES", 60),
        ),
        browser=BrowserConfig(
            bridge_url=_optional("BROWSER_BRIDGE_URL", "http://127.0.0.1:8765"),
            timeout_seconds=_optional_float("BROWSER_BRIDGE_TIMEOUT_SECONDS", 20.0),
            tab_load_timeout_seconds=_optional_float("BROWSER_TAB_LOAD_TIMEOUT_SECONDS", 15.0),
        ),
        data=DataConfig(directory=data_dir),
        log_level=_optional("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """Get the configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
