"""Pydantic-based configuration helpers for Jargon Jar."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Iterable, List, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

MAX_SUGGESTION_LIMIT = 99


class AppSettings(BaseModel):
    """Settings required to serve the Slack webhooks and the JSON API."""

    signing_secret: str = Field(..., alias="SLACK_SIGNING_SECRET")
    database_url: str = Field(..., alias="DATABASE_URL")
    client_id: str | None = Field(None, alias="SLACK_CLIENT_ID")
    client_secret: str | None = Field(None, alias="SLACK_CLIENT_SECRET")
    bot_token: str | None = Field(None, alias="SLACK_BOT_TOKEN")
    slash_command: str = Field("/jargon", alias="SLACK_COMMAND")
    unknown_subcommand_policy: Literal["charge", "error"] = Field("charge", alias="UNKNOWN_SUBCOMMAND_POLICY")
    suggestion_limit: int = Field(MAX_SUGGESTION_LIMIT, alias="SUGGESTION_LIMIT")
    dashboard_url: str = Field("/", alias="DASHBOARD_URL")

    @field_validator("slash_command")
    @classmethod
    def _ensure_leading_slash(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Slash command must not be empty")
        return value if value.startswith("/") else f"/{value}"

    @field_validator("unknown_subcommand_policy", mode="before")
    @classmethod
    def _normalise_policy(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("suggestion_limit")
    @classmethod
    def _ensure_limit_range(cls, value: int) -> int:
        if value <= 0 or value > MAX_SUGGESTION_LIMIT:
            raise ValueError(f"Suggestion limit must be between 1 and {MAX_SUGGESTION_LIMIT}")
        return value

    @property
    def oauth_enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:  # pragma: no cover - exercised via tests
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc
