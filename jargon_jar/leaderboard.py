"""Aggregate queries behind the leaderboard API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import List

from sqlalchemy import Select, desc, func, select
from sqlalchemy.orm import Session

from jargon_jar.models import Charge, JargonTerm, User

TIME_PERIODS = {
    "all": None,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass(frozen=True)
class UserFrequency:
    user_id: int
    slack_id: str
    display_name: str
    avatar_url: str | None
    charge_count: int
    total_amount: Decimal


@dataclass(frozen=True)
class TermFrequency:
    term_id: int
    term: str
    description: str
    usage_count: int
    total_amount: Decimal


def clamp_limit(value: int | str | None, *, default: int = DEFAULT_LIMIT, minimum: int = 1, maximum: int = MAX_LIMIT) -> int:
    if value is None:
        return default

    try:
        numeric = int(value)
    except (TypeError, ValueError):
        return default

    return max(minimum, min(maximum, numeric))


def period_start(time_period: str | None, *, now: datetime | None = None) -> datetime | None:
    """Return the earliest ``created_at`` included for *time_period*."""

    key = (time_period or "all").strip().lower()
    if key not in TIME_PERIODS:
        raise ValueError(f"time_period must be one of: {', '.join(TIME_PERIODS)}")

    window = TIME_PERIODS[key]
    if window is None:
        return None
    return (now or datetime.now(UTC)) - window


def _within(statement: Select, *, workspace_id: int, since: datetime | None) -> Select:
    statement = statement.where(Charge.workspace_id == workspace_id)
    if since is not None:
        statement = statement.where(Charge.created_at >= since)
    return statement


def top_users_by_frequency(
    session: Session,
    *,
    workspace_id: int,
    limit: int = DEFAULT_LIMIT,
    since: datetime | None = None,
) -> List[UserFrequency]:
    """Return the most-charged users, most charges first."""

    charge_count = func.count(Charge.id).label("charge_count")
    total_amount = func.coalesce(func.sum(Charge.amount), 0).label("total_amount")
    statement = (
        select(User.id, User.slack_id, User.display_name, User.avatar_url, charge_count, total_amount)
        .join(Charge, Charge.charged_user_id == User.id)
    )
    statement = _within(statement, workspace_id=workspace_id, since=since)
    statement = (
        statement.group_by(User.id, User.slack_id, User.display_name, User.avatar_url)
        .order_by(desc("charge_count"), desc("total_amount"), User.display_name.asc())
        .limit(limit)
    )

    return [
        UserFrequency(
            user_id=row.id,
            slack_id=row.slack_id,
            display_name=row.display_name,
            avatar_url=row.avatar_url,
            charge_count=int(row.charge_count),
            total_amount=Decimal(str(row.total_amount)).quantize(Decimal("0.01")),
        )
        for row in session.execute(statement).all()
    ]


def top_terms_by_frequency(
    session: Session,
    *,
    workspace_id: int,
    limit: int = DEFAULT_LIMIT,
    since: datetime | None = None,
) -> List[TermFrequency]:
    """Return the most-used jargon terms, most uses first."""

    usage_count = func.count(Charge.id).label("usage_count")
    total_amount = func.coalesce(func.sum(Charge.amount), 0).label("total_amount")
    statement = (
        select(JargonTerm.id, JargonTerm.term, JargonTerm.description, usage_count, total_amount)
        .join(Charge, Charge.jargon_term_id == JargonTerm.id)
    )
    statement = _within(statement, workspace_id=workspace_id, since=since)
    statement = (
        statement.group_by(JargonTerm.id, JargonTerm.term, JargonTerm.description)
        .order_by(desc("usage_count"), desc("total_amount"), JargonTerm.term.asc())
        .limit(limit)
    )

    return [
        TermFrequency(
            term_id=row.id,
            term=row.term,
            description=row.description or "",
            usage_count=int(row.usage_count),
            total_amount=Decimal(str(row.total_amount)).quantize(Decimal("0.01")),
        )
        for row in session.execute(statement).all()
    ]
