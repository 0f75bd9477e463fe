"""Validation and persistence for charge and jargon-term modal submissions."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from slack_sdk.errors import SlackApiError
from sqlalchemy.orm import Session

from jargon_jar.models import UserResolutionError, Workspace
from jargon_jar.slack_client import SlackClient

from . import storage
from .modals import (
    AMOUNT_ACTION_ID,
    AMOUNT_BLOCK_ID,
    DESCRIPTION_ACTION_ID,
    DESCRIPTION_BLOCK_ID,
    JARGON_ACTION_ID,
    JARGON_BLOCK_ID,
    NEW_TERM_ACTION_ID,
    NEW_TERM_BLOCK_ID,
    NEW_TERM_DESCRIPTION_ACTION_ID,
    NEW_TERM_DESCRIPTION_BLOCK_ID,
    NEW_TERM_OPTION_VALUE,
    TERM_ACTION_ID,
    TERM_BLOCK_ID,
    TERM_COST_ACTION_ID,
    TERM_COST_BLOCK_ID,
    TERM_DESCRIPTION_ACTION_ID,
    TERM_DESCRIPTION_BLOCK_ID,
    USER_ACTION_ID,
    USER_BLOCK_ID,
)
from .payloads import state_selected_option, state_selected_user, state_text

CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")
MAX_TERM_LENGTH = 255


class SubmissionError(ValueError):
    """A modal validation failure tied to the block that should show it."""

    def __init__(self, block_id: str, message: str) -> None:
        super().__init__(f"{block_id}: {message}")
        self.block_id = block_id
        self.message = message

    def as_response(self) -> dict[str, Any]:
        return {"response_action": "errors", "errors": {self.block_id: self.message}}


@dataclass(frozen=True)
class NewTermInput:
    term: str
    description: str | None


@dataclass(frozen=True)
class ChargeSubmission:
    """Validated contents of the charge modal."""

    charged_user_id: str
    term_id: str | None
    new_term: NewTermInput | None
    amount: Decimal | None
    note: str | None


@dataclass(frozen=True)
class TermSubmission:
    term: str
    description: str | None
    default_cost: Decimal


@dataclass(frozen=True)
class ChargeReceipt:
    """What was written, enough to announce the charge in Slack."""

    charge_id: int
    workspace_id: int
    term_id: int
    term: str
    amount: Decimal
    channel_id: str
    charging_user_id: str
    charged_user_id: str
    created_term: bool
    note: str | None = None


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse a user-typed dollar amount, tolerating a leading ``$``.

    Returns ``None`` for blank input and raises ``ValueError`` for anything
    that is not a positive number of at most two decimal places' worth.
    """

    if raw is None:
        return None
    cleaned = raw.strip().replace(",", "")
    if cleaned.startswith("$"):
        cleaned = cleaned[1:].strip()
    if not cleaned:
        return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError("Amount must be a number.") from exc

    if not amount.is_finite() or amount <= 0:
        raise ValueError("Amount must be a positive number.")
    amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValueError("Amount must be a positive number.")
    if amount > MAX_AMOUNT:
        raise ValueError("Amount is too large.")
    return amount


def parse_charge_submission(values: Mapping[str, Any]) -> ChargeSubmission:
    """Validate charge modal state in order: user, term, amount."""

    charged_user_id = state_selected_user(values, USER_BLOCK_ID, USER_ACTION_ID)
    if not charged_user_id:
        raise SubmissionError(USER_BLOCK_ID, "Please select a user.")

    selected_term = state_selected_option(values, JARGON_BLOCK_ID, JARGON_ACTION_ID)
    new_term_name = state_text(values, NEW_TERM_BLOCK_ID, NEW_TERM_ACTION_ID)

    new_term: NewTermInput | None = None
    term_id: str | None = None
    if selected_term == NEW_TERM_OPTION_VALUE:
        if not new_term_name:
            if NEW_TERM_BLOCK_ID in values:
                raise SubmissionError(NEW_TERM_BLOCK_ID, "Please name the new jargon term.")
            raise SubmissionError(JARGON_BLOCK_ID, "Please name the new jargon term.")
        if len(new_term_name) > MAX_TERM_LENGTH:
            raise SubmissionError(NEW_TERM_BLOCK_ID, "That term is too long.")
        new_term = NewTermInput(
            term=new_term_name,
            description=state_text(values, NEW_TERM_DESCRIPTION_BLOCK_ID, NEW_TERM_DESCRIPTION_ACTION_ID),
        )
    elif selected_term:
        term_id = selected_term
    else:
        raise SubmissionError(JARGON_BLOCK_ID, "Please select a jargon term.")

    try:
        amount = parse_amount(state_text(values, AMOUNT_BLOCK_ID, AMOUNT_ACTION_ID))
    except ValueError as exc:
        raise SubmissionError(AMOUNT_BLOCK_ID, str(exc)) from exc

    if new_term is not None and amount is None:
        raise SubmissionError(AMOUNT_BLOCK_ID, "Please enter a positive amount for the new term.")

    return ChargeSubmission(
        charged_user_id=charged_user_id,
        term_id=term_id,
        new_term=new_term,
        amount=amount,
        note=state_text(values, DESCRIPTION_BLOCK_ID, DESCRIPTION_ACTION_ID),
    )


def parse_term_submission(values: Mapping[str, Any]) -> TermSubmission:
    """Validate the add-term modal state."""

    term = state_text(values, TERM_BLOCK_ID, TERM_ACTION_ID)
    if not term:
        raise SubmissionError(TERM_BLOCK_ID, "Please enter a jargon term.")
    if len(term) > MAX_TERM_LENGTH:
        raise SubmissionError(TERM_BLOCK_ID, "That term is too long.")

    try:
        default_cost = parse_amount(state_text(values, TERM_COST_BLOCK_ID, TERM_COST_ACTION_ID))
    except ValueError as exc:
        raise SubmissionError(TERM_COST_BLOCK_ID, str(exc)) from exc
    if default_cost is None:
        raise SubmissionError(TERM_COST_BLOCK_ID, "Please enter a default cost.")

    return TermSubmission(
        term=term,
        description=state_text(values, TERM_DESCRIPTION_BLOCK_ID, TERM_DESCRIPTION_ACTION_ID),
        default_cost=default_cost,
    )


def slack_profile_fetcher(slack_client: SlackClient | None):
    """Return a ``users.info`` lookup that reports failures as ``UserResolutionError``."""

    if slack_client is None:
        return None

    def fetch(slack_id: str) -> Mapping[str, Any]:
        try:
            user = slack_client.user_info(user=slack_id)
        except SlackApiError as exc:
            error_code = exc.response.get("error") if getattr(exc, "response", None) else str(exc)
            raise UserResolutionError(slack_id, f"users.info failed: {error_code}") from exc
        if not user or user.get("deleted"):
            raise UserResolutionError(slack_id)
        return user

    return fetch


def record_charge(
    session: Session,
    *,
    workspace: Workspace,
    submission: ChargeSubmission,
    charging_slack_id: str,
    channel_id: str,
    slack_client: SlackClient | None = None,
) -> ChargeReceipt:
    """Resolve users and the term, then insert one ``Charge`` row.

    Users are resolved before any write so a resolution failure leaves the
    session clean. Raises ``UserResolutionError`` or ``TermNotFoundError``.
    """

    fetch_profile = slack_profile_fetcher(slack_client)
    charging_user = storage.find_or_create_user(
        session, workspace_id=workspace.id, slack_id=charging_slack_id, fetch_profile=fetch_profile
    )
    charged_user = storage.find_or_create_user(
        session, workspace_id=workspace.id, slack_id=submission.charged_user_id, fetch_profile=fetch_profile
    )

    created_term = False
    if submission.new_term is not None:
        term = storage.find_term_by_name(session, workspace_id=workspace.id, term=submission.new_term.term)
        if term is None:
            term = storage.create_term(
                session,
                workspace_id=workspace.id,
                term=submission.new_term.term,
                description=submission.new_term.description,
                default_cost=submission.amount,
                created_by=charging_user.id,
            )
            created_term = True
    else:
        term = storage.get_term(session, workspace_id=workspace.id, term_id=submission.term_id)

    amount = submission.amount if submission.amount is not None else Decimal(term.default_cost)
    amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)

    charge = storage.insert_charge(
        session,
        workspace_id=workspace.id,
        charging_user_id=charging_user.id,
        charged_user_id=charged_user.id,
        jargon_term_id=term.id,
        amount=amount,
        channel_id=channel_id,
        message_text=submission.note,
    )

    return ChargeReceipt(
        charge_id=charge.id,
        workspace_id=workspace.id,
        term_id=term.id,
        term=term.term,
        amount=amount,
        channel_id=channel_id,
        charging_user_id=charging_slack_id,
        charged_user_id=submission.charged_user_id,
        created_term=created_term,
        note=submission.note,
    )


def record_term(
    session: Session,
    *,
    workspace: Workspace,
    submission: TermSubmission,
    creator_slack_id: str | None,
    slack_client: SlackClient | None = None,
) -> storage.TermSummary:
    """Insert a term from the add-term modal. Raises ``DuplicateTermError``."""

    created_by = None
    if creator_slack_id:
        try:
            creator = storage.find_or_create_user(
                session,
                workspace_id=workspace.id,
                slack_id=creator_slack_id,
                fetch_profile=slack_profile_fetcher(slack_client),
            )
            created_by = creator.id
        except UserResolutionError:
            created_by = None

    row = storage.create_term(
        session,
        workspace_id=workspace.id,
        term=submission.term,
        description=submission.description,
        default_cost=submission.default_cost,
        created_by=created_by,
    )
    return storage.to_term_summary(row)
