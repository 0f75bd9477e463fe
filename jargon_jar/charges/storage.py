"""Data access helpers for workspaces, users, jargon terms and charges."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Mapping, Sequence

from sqlalchemy import Select, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from jargon_jar.models import (
    Charge,
    DuplicateTermError,
    JargonTerm,
    TermNotFoundError,
    User,
    UserResolutionError,
    Workspace,
    WorkspaceNotFoundError,
)

ProfileFetcher = Callable[[str], Mapping[str, Any]]


@dataclass(frozen=True)
class TermSummary:
    """Lightweight representation of a jargon term row."""

    id: int
    term: str
    description: str
    default_cost: Decimal
    workspace_id: int | None


def to_term_summary(row: JargonTerm) -> TermSummary:
    return TermSummary(
        id=row.id,
        term=row.term,
        description=row.description or "",
        default_cost=Decimal(row.default_cost),
        workspace_id=row.workspace_id,
    )


def _to_summaries(session: Session, statement: Select) -> List[TermSummary]:
    return [to_term_summary(row) for row in session.scalars(statement).all()]


def _dialect_insert(session: Session):
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    return None


def _insert_on_conflict(
    session: Session,
    model,
    values: Mapping[str, Any],
    *,
    conflict_columns: Sequence[str],
    update_columns: Iterable[str] = (),
) -> bool:
    """Run ``INSERT .. ON CONFLICT`` where the dialect supports it.

    Returns ``False`` when the dialect has no ON CONFLICT support so the
    caller can fall back to select-then-write.
    """

    insert_fn = _dialect_insert(session)
    if insert_fn is None:
        return False

    statement = insert_fn(model).values(**values)
    update_columns = list(update_columns)
    if update_columns:
        statement = statement.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={column: statement.excluded[column] for column in update_columns},
        )
    else:
        statement = statement.on_conflict_do_nothing(index_elements=list(conflict_columns))
    session.execute(statement)
    return True


# Workspaces


def get_workspace_by_slack_id(session: Session, slack_id: str | None) -> Workspace | None:
    if not slack_id:
        return None
    return session.execute(select(Workspace).where(Workspace.slack_id == slack_id)).scalar_one_or_none()


def require_workspace(session: Session, *, slack_id: str | None = None, workspace_id: int | None = None) -> Workspace:
    """Return the workspace by internal id or Slack team id, raising when absent."""

    workspace = None
    if workspace_id is not None:
        workspace = session.get(Workspace, workspace_id)
    if workspace is None and slack_id:
        workspace = get_workspace_by_slack_id(session, slack_id)
    if workspace is None:
        raise WorkspaceNotFoundError(f"No workspace installed for team {slack_id or workspace_id}")
    return workspace


def upsert_workspace(
    session: Session,
    *,
    slack_id: str,
    name: str,
    domain: str | None,
    bot_token: str,
    user_token: str | None,
) -> Workspace:
    """Create or refresh the workspace keyed on its Slack team id."""

    values = {
        "slack_id": slack_id,
        "name": name,
        "domain": domain,
        "bot_token": bot_token,
        "user_token": user_token,
    }
    if _insert_on_conflict(
        session,
        Workspace,
        values,
        conflict_columns=("slack_id",),
        update_columns=("name", "domain", "bot_token", "user_token"),
    ):
        workspace = get_workspace_by_slack_id(session, slack_id)
        session.refresh(workspace)
        return workspace

    workspace = get_workspace_by_slack_id(session, slack_id)
    if workspace is None:
        workspace = Workspace(**values)
        session.add(workspace)
    else:
        for key, value in values.items():
            setattr(workspace, key, value)
    session.flush()
    return workspace


# Users


def profile_from_slack_user(user: Mapping[str, Any]) -> dict[str, Any]:
    """Map a ``users.info`` user object onto ``User`` columns."""

    profile = user.get("profile") or {}
    display_name = (
        profile.get("display_name")
        or profile.get("real_name")
        or user.get("real_name")
        or user.get("name")
        or "Unknown User"
    )
    avatar_url = profile.get("image_512") or profile.get("image_192") or profile.get("image_72")
    return {
        "email": profile.get("email"),
        "display_name": display_name,
        "avatar_url": avatar_url,
    }


def get_user(session: Session, *, workspace_id: int, slack_id: str) -> User | None:
    return session.execute(
        select(User).where(User.slack_id == slack_id, User.workspace_id == workspace_id)
    ).scalar_one_or_none()


def upsert_user(
    session: Session,
    *,
    workspace_id: int,
    slack_id: str,
    email: str | None,
    display_name: str,
    avatar_url: str | None,
) -> User:
    values = {
        "workspace_id": workspace_id,
        "slack_id": slack_id,
        "email": email,
        "display_name": display_name,
        "avatar_url": avatar_url,
    }
    if _insert_on_conflict(
        session,
        User,
        values,
        conflict_columns=("slack_id", "workspace_id"),
        update_columns=("email", "display_name", "avatar_url"),
    ):
        user = get_user(session, workspace_id=workspace_id, slack_id=slack_id)
        session.refresh(user)
        return user

    user = get_user(session, workspace_id=workspace_id, slack_id=slack_id)
    if user is None:
        user = User(**values)
        session.add(user)
    else:
        for key, value in values.items():
            setattr(user, key, value)
    session.flush()
    return user


def find_or_create_user(
    session: Session,
    *,
    workspace_id: int,
    slack_id: str,
    fetch_profile: ProfileFetcher | None = None,
) -> User:
    """Return the user for *slack_id*, creating it from Slack on first sight.

    Two first-time interactions for the same member can race here; the
    ``(slack_id, workspace_id)`` unique constraint plus ON CONFLICT DO
    NOTHING makes the loser re-read the winner's row.
    """

    if not slack_id:
        raise UserResolutionError(slack_id, "No Slack user id supplied")

    user = get_user(session, workspace_id=workspace_id, slack_id=slack_id)
    if user is not None:
        return user

    if fetch_profile is None:
        raise UserResolutionError(slack_id)

    values = {"workspace_id": workspace_id, "slack_id": slack_id}
    values.update(profile_from_slack_user(fetch_profile(slack_id)))

    if not _insert_on_conflict(session, User, values, conflict_columns=("slack_id", "workspace_id")):
        session.add(User(**values))
        session.flush()

    user = get_user(session, workspace_id=workspace_id, slack_id=slack_id)
    if user is None:
        raise UserResolutionError(slack_id)
    return user


# Jargon terms


def _term_scope(workspace_id: int | None):
    if workspace_id is None:
        return JargonTerm.workspace_id.is_(None)
    return or_(JargonTerm.workspace_id == workspace_id, JargonTerm.workspace_id.is_(None))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_terms(session: Session, *, workspace_id: int | None, limit: int | None = None) -> List[TermSummary]:
    """Return the workspace's terms plus global terms ordered by term."""

    statement = select(JargonTerm).where(_term_scope(workspace_id)).order_by(JargonTerm.term.asc(), JargonTerm.id.asc())
    if limit is not None:
        statement = statement.limit(limit)
    return _to_summaries(session, statement)


def search_terms(session: Session, *, workspace_id: int | None, query: str, limit: int = 99) -> List[TermSummary]:
    """Return terms whose text contains *query*, case-insensitively."""

    statement = select(JargonTerm).where(_term_scope(workspace_id))
    query = (query or "").strip()
    if query:
        statement = statement.where(JargonTerm.term.ilike(f"%{_escape_like(query)}%", escape="\\"))
    statement = statement.order_by(JargonTerm.term.asc(), JargonTerm.id.asc()).limit(limit)
    return _to_summaries(session, statement)


def get_term(session: Session, *, workspace_id: int | None, term_id: int | str) -> JargonTerm:
    """Return a term visible to the workspace, raising ``TermNotFoundError``."""

    try:
        term_pk = int(term_id)
    except (TypeError, ValueError) as exc:
        raise TermNotFoundError(f"Invalid jargon term id {term_id!r}") from exc

    term = session.execute(
        select(JargonTerm).where(JargonTerm.id == term_pk, _term_scope(workspace_id))
    ).scalar_one_or_none()
    if term is None:
        raise TermNotFoundError(f"Jargon term {term_pk} not found")
    return term


def find_term_by_name(session: Session, *, workspace_id: int | None, term: str) -> JargonTerm | None:
    normalised = (term or "").strip().lower()
    if not normalised:
        return None
    return session.execute(
        select(JargonTerm)
        .where(func.lower(JargonTerm.term) == normalised, _term_scope(workspace_id))
        .order_by(JargonTerm.id.asc())
        .limit(1)
    ).scalar_one_or_none()


def create_term(
    session: Session,
    *,
    workspace_id: int | None,
    term: str,
    default_cost: Decimal,
    description: str | None = None,
    created_by: int | None = None,
) -> JargonTerm:
    """Insert a new term, refusing case-insensitive duplicates in scope."""

    term = term.strip()
    if find_term_by_name(session, workspace_id=workspace_id, term=term) is not None:
        raise DuplicateTermError(f"Jargon term '{term}' already exists")

    row = JargonTerm(
        term=term,
        description=(description or "").strip(),
        default_cost=default_cost,
        created_by=created_by,
        workspace_id=workspace_id,
    )
    session.add(row)
    session.flush()
    return row


# Charges


def insert_charge(
    session: Session,
    *,
    workspace_id: int,
    charging_user_id: int,
    charged_user_id: int,
    jargon_term_id: int,
    amount: Decimal,
    channel_id: str,
    message_text: str | None = None,
    message_ts: str | None = None,
) -> Charge:
    charge = Charge(
        workspace_id=workspace_id,
        charging_user_id=charging_user_id,
        charged_user_id=charged_user_id,
        jargon_term_id=jargon_term_id,
        amount=amount,
        channel_id=channel_id,
        is_automatic=False,
        message_text=message_text,
        message_ts=message_ts,
    )
    session.add(charge)
    session.flush()
    return charge
