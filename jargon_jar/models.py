"""SQLAlchemy models for workspaces, users, jargon terms and charges."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import List

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from jargon_jar.db import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Workspace(Base):
    """An installed Slack team."""

    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slack_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bot_token: Mapped[str] = mapped_column(Text, nullable=False)
    user_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    users: Mapped[List["User"]] = relationship("User", back_populates="workspace")


class User(Base):
    """A Slack member known to the app, scoped to one workspace."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("slack_id", "workspace_id", name="uq_users_slack_workspace"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slack_id: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    workspace: Mapped[Workspace] = relationship("Workspace", back_populates="users")


class JargonTerm(Base):
    """A chargeable phrase; ``workspace_id`` of ``None`` marks a global term."""

    __tablename__ = "jargon_terms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    default_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    workspace_id: Mapped[int | None] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    creator: Mapped[User | None] = relationship("User")


class Charge(Base):
    """One user fining another for using a jargon term."""

    __tablename__ = "charges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    charging_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    charged_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    jargon_term_id: Mapped[int] = mapped_column(ForeignKey("jargon_terms.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    message_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_ts: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    charging_user: Mapped[User] = relationship("User", foreign_keys=[charging_user_id])
    charged_user: Mapped[User] = relationship("User", foreign_keys=[charged_user_id])
    jargon_term: Mapped[JargonTerm] = relationship("JargonTerm")


class WorkspaceNotFoundError(Exception):
    """Raised when a Slack team has not installed the app."""


class UserResolutionError(Exception):
    """Raised when a Slack user id cannot be mapped to a ``User`` row."""

    def __init__(self, slack_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Could not resolve Slack user {slack_id}")
        self.slack_id = slack_id


class TermNotFoundError(Exception):
    """Raised when a jargon term is missing or outside the workspace scope."""


class DuplicateTermError(Exception):
    """Raised when a jargon term already exists for the workspace or globally."""
