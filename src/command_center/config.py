"""Application Configuration

Type-safe configuration using Pydantic Settings for environment variable
handling. Every field has a development default so the engine starts with
no environment at all (echo backend, all guardrails on).
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

DOMAIN_DIR = Path(__file__).parent / "domain"


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # =============================================================================
    # APPLICATION
    # =============================================================================

    app_name: str = Field(default="Command Center", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    app_description: str = Field(
        default="Natural-language command orchestration over models, tools and guardrails",
        alias="APP_DESCRIPTION",
    )
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # =============================================================================
    # API CONFIGURATION
    # =============================================================================

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # CORS Settings
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")
    cors_credentials: bool = Field(default=False, alias="CORS_CREDENTIALS")
    cors_methods: str = Field(default="*", alias="CORS_METHODS")
    cors_headers: str = Field(default="*", alias="CORS_HEADERS")

    # =============================================================================
    # MODELS
    # =============================================================================

    model_catalog_path: str = Field(default=str(DOMAIN_DIR / "model_metadata.json"), alias="MODEL_CATALOG_PATH")
    default_model_id: str | None = Field(default=None, alias="DEFAULT_MODEL_ID")
    # "echo" answers offline; "pydantic_ai" calls real providers (needs their API keys)
    model_backend: Literal["echo", "pydantic_ai"] = Field(default="echo", alias="MODEL_BACKEND")
    model_timeout_seconds: float = Field(default=60.0, gt=0, alias="MODEL_TIMEOUT_SECONDS")
    model_temperature: float = Field(default=0.7, ge=0, le=2, alias="MODEL_TEMPERATURE")
    follow_up_temperature: float = Field(default=0.5, ge=0, le=2, alias="FOLLOW_UP_TEMPERATURE")

    # =============================================================================
    # TOOLS, MEMORY & KNOWLEDGE
    # =============================================================================

    tool_timeout_seconds: float = Field(default=30.0, gt=0, alias="TOOL_TIMEOUT_SECONDS")
    max_sessions: int = Field(default=1000, ge=1, alias="MAX_SESSIONS")
    memory_max_turns: int = Field(default=20, ge=1, alias="MEMORY_MAX_TURNS")
    retrieval_history_turns: int = Field(default=6, ge=0, alias="RETRIEVAL_HISTORY_TURNS")
    feature_taxonomy_path: str = Field(
        default=str(DOMAIN_DIR / "feature_taxonomy.json"), alias="FEATURE_TAXONOMY_PATH"
    )
    tavily_api_key: str | None = Field(default=None, alias="TAVILY_API_KEY")

    # =============================================================================
    # GUARDRAILS
    # =============================================================================

    guardrail_content_moderation: bool = Field(default=True, alias="GUARDRAIL_CONTENT_MODERATION")
    guardrail_jailbreak_prevention: bool = Field(default=True, alias="GUARDRAIL_JAILBREAK_PREVENTION")
    guardrail_pii_detection: bool = Field(default=True, alias="GUARDRAIL_PII_DETECTION")
    guardrail_toxic_language_filter: bool = Field(default=True, alias="GUARDRAIL_TOXIC_LANGUAGE_FILTER")
    record_blocked_attempts: bool = Field(default=False, alias="RECORD_BLOCKED_ATTEMPTS")

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
        "protected_namespaces": (),
    }

    @property
    def guardrail_flags(self) -> dict[str, bool]:
        """Initial enabled state per built-in guardrail policy."""
        return {
            "content_moderation": self.guardrail_content_moderation,
            "jailbreak_prevention": self.guardrail_jailbreak_prevention,
            "pii_detection": self.guardrail_pii_detection,
            "toxic_language_filter": self.guardrail_toxic_language_filter,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
