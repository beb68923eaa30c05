from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_DIR / "data"


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    env: str = Field(default="dev", alias="APP_ENV")
    debug: bool = Field(default=False, alias="APP_DEBUG")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")

    # Web widget origins
    cors_allow_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        alias="CORS_ALLOW_ORIGINS",
    )

    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_temperature: float = Field(default=0.0, alias="OPENAI_TEMPERATURE")
    use_langchain: bool = Field(default=False, alias="USE_LANGCHAIN")

    # LangSmith / LangChain tracing
    langsmith_api_key: str | None = Field(default=None, alias="LANGSMITH_API_KEY")
    langsmith_project: str | None = Field(default=None, alias="LANGSMITH_PROJECT")
    langsmith_tracing_v2: bool = Field(default=False, alias="LANGCHAIN_TRACING_V2")

    http_timeout_seconds: float = Field(default=15.0, alias="HTTP_TIMEOUT_SECONDS")
    nlu_timeout_seconds: float = Field(default=10.0, alias="NLU_TIMEOUT_SECONDS")
    catalog_timeout_seconds: float = Field(default=5.0, alias="CATALOG_TIMEOUT_SECONDS")

    # Session registry bounds
    session_max_entries: int = Field(default=10_000, alias="SESSION_MAX_ENTRIES")
    session_idle_ttl_seconds: float = Field(default=6 * 3600, alias="SESSION_IDLE_TTL_SECONDS")
    history_limit: int = Field(default=20, alias="HISTORY_LIMIT")

    # Product resolution
    fuzzy_jaro_winkler_threshold: float = Field(default=0.70, alias="FUZZY_JARO_WINKLER_THRESHOLD")
    fuzzy_edit_threshold: float = Field(default=0.65, alias="FUZZY_EDIT_THRESHOLD")
    product_code_prefixes: List[str] = Field(default_factory=lambda: ["rev"], alias="PRODUCT_CODE_PREFIXES")

    # Outbound rendering
    ambiguity_list_limit: int = Field(default=15, alias="AMBIGUITY_LIST_LIMIT")
    message_chunk_chars: int = Field(default=3500, alias="MESSAGE_CHUNK_CHARS")

    # Orders
    order_number_prefix: str = Field(default="KG", alias="ORDER_NUMBER_PREFIX")
    order_source: str = Field(default="chat", alias="ORDER_SOURCE")
    default_currency: str = Field(default="KZT", alias="DEFAULT_CURRENCY")
    currency_symbol: str = Field(default="₸", alias="CURRENCY_SYMBOL")
    display_timezone: str = Field(default="Asia/Almaty", alias="DISPLAY_TIMEZONE")

    # Operator notifications
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_manager_channel_id: str = Field(default="", alias="TELEGRAM_MANAGER_CHANNEL_ID")
    telegram_api_base_url: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_BASE_URL")

    catalog_path: Path = Field(default=DATA_DIR / "catalog.json", alias="CATALOG_PATH")
    nlu_terms_path: Path = Field(default=DATA_DIR / "nlu_terms.yaml", alias="NLU_TERMS_PATH")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
