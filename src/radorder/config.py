from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly. Secrets have no defaults: a missing JWT secret disables token
    issuance rather than falling back to a well-known value.
    """

    # SQLite reference database holding icd10_codes, cpt_codes,
    # icd10_cpt_mappings and icd10_markdown_docs.
    code_database_path: Path = Path(os.getenv("CODE_DATABASE_PATH", "DB/medical_codes.db"))

    # Optional database configuration for SQL-backed order persistence.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # LLM provider selection: "openai" (default) or "anthropic".
    llm_provider: str = os.getenv("LLM_PROVIDER", "openai")
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    # When unset each provider backend uses its own default model.
    llm_model: Optional[str] = os.getenv("LLM_MODEL")
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "4096"))
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0"))
    llm_timeout_seconds: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

    # When true, provider and code database failures degrade to the rule-based
    # fallback result. When false they surface as HTTP 503.
    validation_fallback_on_error: bool = os.getenv("VALIDATION_FALLBACK_ON_ERROR", "true").lower() == "true"
    default_specialty: str = os.getenv("DEFAULT_SPECIALTY", "General Radiology")

    # JWT authentication.
    jwt_secret: Optional[str] = os.getenv("JWT_SECRET")
    jwt_refresh_secret: Optional[str] = os.getenv("JWT_REFRESH_SECRET")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

    invitation_expire_hours: int = int(os.getenv("INVITATION_EXPIRE_HOURS", "72"))

    # CORS configuration: comma-separated origins. Default is "*" which is
    # acceptable for local development but should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    @property
    def llm_api_key(self) -> Optional[str]:
        """API key for the selected provider, if configured."""

        if self.llm_provider.lower() == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key


settings = Settings()
