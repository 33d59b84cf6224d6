"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Workout Coach Orchestrator", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    sqlite_path: Path = Field(
        default=Path("../db/conversations.db"),
        description="Conversation state DB path.",
    )
    member_data_db_path: Path = Field(
        default=Path("../db/member_data.db"),
        description="Read-only member data DB (profile snapshots, sessions, goals).",
    )

    openrouter_api_key: str | None = Field(
        default=None,
        description="OpenRouter API key used for generation calls.",
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of the OpenAI-compatible chat completions API.",
    )
    openrouter_referer: str | None = Field(
        default=None,
        description="Referer header required by OpenRouter (your app URL).",
    )
    openrouter_title: str | None = Field(
        default="Workout Coach Orchestrator",
        description="Title header sent to OpenRouter.",
    )
    model_fast: str = Field(
        default="openai/gpt-5.2-chat",
        description="Model used for quick chat and low reasoning levels.",
    )
    model_capable: str = Field(
        default="openai/gpt-5.2",
        description="Model used for workout generation and deeper reasoning.",
    )

    knowledge_token_budget: int = Field(
        default=1500,
        ge=0,
        description="Token ceiling for injected knowledge context.",
    )
    max_steps: int = Field(
        default=5,
        ge=1,
        description="Default step ceiling for the tool-calling loop.",
    )
    enable_extended_cache: bool = Field(
        default=True,
        description="Request extended provider-side prompt cache retention.",
    )
    reasoning_timeouts: Dict[str, float] = Field(
        default_factory=lambda: {
            "none": 30.0,
            "quick": 45.0,
            "standard": 90.0,
            "deep": 120.0,
            "max": 180.0,
        },
        description="Per reasoning level HTTP timeout (seconds) for model calls.",
    )

    quota_free_workouts: int = Field(default=5, ge=0, description="Free plan workout generations per period.")
    quota_free_chats: int = Field(default=100, ge=0, description="Free plan coach messages per period.")
    quota_period_days: int = Field(default=30, ge=1, description="Length of a quota period in days.")
    pro_members: List[str] = Field(
        default_factory=list,
        description="Member identifiers on the unlimited plan.",
    )

    frontend_origin: AnyHttpUrl | None = Field(
        default=None,
        description="Allowed frontend origin (CORS). If omitted, defaults to localhost dev server.",
    )
    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins for multi-client deployments.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the full list of allowed CORS origins."""

        origins: list[str] = []

        if self.frontend_origin:
            origins.append(str(self.frontend_origin).rstrip("/"))
        else:
            origins.extend([
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ])

        for origin in self.additional_origins:
            origins.append(str(origin).rstrip("/"))

        seen: set[str] = set()
        unique: list[str] = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique.append(origin)

        return unique

    @property
    def openrouter_enabled(self) -> bool:
        return bool(self.openrouter_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
