"""Utilities for building the Jargon Jar Block Kit modals.

Every builder here is pure: callers fetch terms and users first and pass
them in, so the same functions serve ``views.open``, ``views.update`` and
``views.push``.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, List, Protocol, Sequence

CHARGE_MODAL_CALLBACK_ID = "charge_modal"
ADD_TERM_MODAL_CALLBACK_ID = "add_jargon_modal"

USER_BLOCK_ID = "user_block"
USER_ACTION_ID = "user_select"
JARGON_BLOCK_ID = "jargon_block"
JARGON_ACTION_ID = "jargon_select"
JARGON_DETAILS_BLOCK_ID = "jargon_details_block"
NEW_TERM_BLOCK_ID = "new_term_block"
NEW_TERM_ACTION_ID = "new_term_input"
NEW_TERM_DESCRIPTION_BLOCK_ID = "new_term_description_block"
NEW_TERM_DESCRIPTION_ACTION_ID = "new_term_description_input"
AMOUNT_BLOCK_ID = "amount_block"
AMOUNT_ACTION_ID = "amount_input"
DESCRIPTION_BLOCK_ID = "description_block"
DESCRIPTION_ACTION_ID = "description_input"
ACTIONS_BLOCK_ID = "actions_block"
ADD_NEW_JARGON_ACTION_ID = "add_new_jargon"

TERM_BLOCK_ID = "term_block"
TERM_ACTION_ID = "term_input"
TERM_DESCRIPTION_BLOCK_ID = "term_description_block"
TERM_DESCRIPTION_ACTION_ID = "term_description_input"
TERM_COST_BLOCK_ID = "term_cost_block"
TERM_COST_ACTION_ID = "term_cost_input"

NEW_TERM_OPTION_VALUE = "new_term"
NEW_TERM_OPTION_TEXT = "Add a new term..."

MAX_OPTION_TEXT_LENGTH = 75
MAX_STATIC_OPTIONS = 100
MAX_TITLE_LENGTH = 24


class TermLike(Protocol):
    id: int
    term: str
    description: str
    default_cost: Decimal


@dataclass(frozen=True)
class ModalMetadata:
    """State carried in ``private_metadata`` between modal round trips."""

    workspace_id: int | None
    channel_id: str
    charging_user_id: str
    parent_view_id: str | None = None

    def dumps(self) -> str:
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        return json.dumps(payload, separators=(",", ":"))


def parse_modal_metadata(raw_value: str | None) -> ModalMetadata:
    """Parse ``private_metadata`` back into a :class:`ModalMetadata`."""

    try:
        payload = json.loads(raw_value or "")
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid modal metadata.") from exc

    if not isinstance(payload, dict):
        raise ValueError("Invalid modal metadata.")

    channel_id = payload.get("channel_id")
    charging_user_id = payload.get("charging_user_id")
    if not isinstance(channel_id, str) or not channel_id:
        raise ValueError("Modal metadata is missing the channel.")
    if not isinstance(charging_user_id, str) or not charging_user_id:
        raise ValueError("Modal metadata is missing the charging user.")

    workspace_id = payload.get("workspace_id")
    if workspace_id is not None and not isinstance(workspace_id, int):
        raise ValueError("Invalid modal metadata.")

    parent_view_id = payload.get("parent_view_id")
    return ModalMetadata(
        workspace_id=workspace_id,
        channel_id=channel_id,
        charging_user_id=charging_user_id,
        parent_view_id=parent_view_id if isinstance(parent_view_id, str) else None,
    )


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _plain(text: str) -> Dict[str, Any]:
    return {"type": "plain_text", "text": text, "emoji": True}


def format_cost(amount: Decimal | float | int) -> str:
    return f"${Decimal(str(amount)):.2f}"


def format_term_option_text(term: TermLike) -> str:
    return _truncate(f"{term.term} ({format_cost(term.default_cost)})", MAX_OPTION_TEXT_LENGTH)


def build_term_option(term: TermLike) -> Dict[str, Any]:
    option: Dict[str, Any] = {
        "text": _plain(format_term_option_text(term)),
        "value": str(term.id),
    }
    if term.description:
        option["description"] = _plain(_truncate(term.description, MAX_OPTION_TEXT_LENGTH))
    return option


def build_new_term_option() -> Dict[str, Any]:
    return {"text": _plain(NEW_TERM_OPTION_TEXT), "value": NEW_TERM_OPTION_VALUE}


def build_term_options(terms: Sequence[TermLike]) -> List[Dict[str, Any]]:
    """Return select options for *terms* followed by the new-term sentinel."""

    options = [build_term_option(term) for term in terms]
    options.append(build_new_term_option())
    return options


def _jargon_select_element(
    terms: Sequence[TermLike],
    *,
    selected_term: TermLike | None,
    new_term: bool,
) -> Dict[str, Any]:
    element: Dict[str, Any] = {
        "action_id": JARGON_ACTION_ID,
        "placeholder": _plain("Select jargon term"),
    }

    if len(terms) + 1 <= MAX_STATIC_OPTIONS:
        element["type"] = "static_select"
        element["options"] = build_term_options(terms)
    else:
        element["type"] = "external_select"
        element["min_query_length"] = 0

    if selected_term is not None:
        element["initial_option"] = build_term_option(selected_term)
    elif new_term:
        element["initial_option"] = build_new_term_option()
    return element


def _term_details_block(term: TermLike) -> Dict[str, Any]:
    text = f"*{term.term}* costs {format_cost(term.default_cost)} by default."
    if term.description:
        text = f"{text}\n{term.description}"
    return {
        "type": "context",
        "block_id": JARGON_DETAILS_BLOCK_ID,
        "elements": [{"type": "mrkdwn", "text": text}],
    }


def _text_input_block(
    *,
    block_id: str,
    action_id: str,
    label: str,
    placeholder: str,
    optional: bool,
    multiline: bool = False,
    initial_value: str | None = None,
) -> Dict[str, Any]:
    element: Dict[str, Any] = {
        "type": "plain_text_input",
        "action_id": action_id,
        "placeholder": _plain(placeholder),
    }
    if multiline:
        element["multiline"] = True
    if initial_value:
        element["initial_value"] = initial_value
    return {
        "type": "input",
        "block_id": block_id,
        "optional": optional,
        "label": _plain(label),
        "element": element,
    }


def build_charge_modal(
    terms: Sequence[TermLike],
    metadata: ModalMetadata,
    *,
    selected_term: TermLike | None = None,
    new_term: bool = False,
    initial_user: str | None = None,
) -> Dict[str, Any]:
    """Build the "Create a Charge" modal.

    ``selected_term`` renders the chosen term's cost and description and
    makes the amount optional (it defaults to the term's cost). ``new_term``
    swaps in the fields needed to create a term inline, in which case an
    amount is required.
    """

    user_element: Dict[str, Any] = {
        "type": "users_select",
        "action_id": USER_ACTION_ID,
        "placeholder": _plain("Select a user"),
    }
    if initial_user:
        user_element["initial_user"] = initial_user

    blocks: List[Dict[str, Any]] = [
        {
            "type": "input",
            "block_id": USER_BLOCK_ID,
            "label": _plain("Who used jargon?"),
            "element": user_element,
        },
        {
            "type": "input",
            "block_id": JARGON_BLOCK_ID,
            "dispatch_action": True,
            "label": _plain("What jargon was used?"),
            "element": _jargon_select_element(terms, selected_term=selected_term, new_term=new_term),
        },
    ]

    if new_term:
        blocks.append(
            _text_input_block(
                block_id=NEW_TERM_BLOCK_ID,
                action_id=NEW_TERM_ACTION_ID,
                label="New jargon term",
                placeholder="e.g. synergy",
                optional=False,
            )
        )
        blocks.append(
            _text_input_block(
                block_id=NEW_TERM_DESCRIPTION_BLOCK_ID,
                action_id=NEW_TERM_DESCRIPTION_ACTION_ID,
                label="What does it mean?",
                placeholder="Describe the term",
                optional=True,
                multiline=True,
            )
        )
    elif selected_term is not None:
        blocks.append(_term_details_block(selected_term))

    if selected_term is not None:
        amount_placeholder = f"Defaults to {format_cost(selected_term.default_cost)}"
    else:
        amount_placeholder = "Enter charge amount"

    blocks.append(
        _text_input_block(
            block_id=AMOUNT_BLOCK_ID,
            action_id=AMOUNT_ACTION_ID,
            label="Charge amount ($)",
            placeholder=amount_placeholder,
            optional=not new_term,
        )
    )
    blocks.append(
        _text_input_block(
            block_id=DESCRIPTION_BLOCK_ID,
            action_id=DESCRIPTION_ACTION_ID,
            label="Context",
            placeholder="What was said?",
            optional=True,
            multiline=True,
        )
    )
    blocks.append(
        {
            "type": "actions",
            "block_id": ACTIONS_BLOCK_ID,
            "elements": [
                {
                    "type": "button",
                    "text": _plain("Add New Jargon"),
                    "action_id": ADD_NEW_JARGON_ACTION_ID,
                    "style": "primary",
                }
            ],
        }
    )

    return {
        "type": "modal",
        "callback_id": CHARGE_MODAL_CALLBACK_ID,
        "private_metadata": metadata.dumps(),
        "notify_on_close": True,
        "title": _plain("Create a Charge"),
        "submit": _plain("Submit"),
        "close": _plain("Cancel"),
        "blocks": blocks,
    }


def build_add_term_modal(metadata: ModalMetadata, *, initial_term: str | None = None) -> Dict[str, Any]:
    """Build the "Add Jargon" modal; values are validated on submission."""

    blocks = [
        _text_input_block(
            block_id=TERM_BLOCK_ID,
            action_id=TERM_ACTION_ID,
            label="Jargon term",
            placeholder="e.g. circle back",
            optional=False,
            initial_value=initial_term,
        ),
        _text_input_block(
            block_id=TERM_DESCRIPTION_BLOCK_ID,
            action_id=TERM_DESCRIPTION_ACTION_ID,
            label="Description",
            placeholder="What does it actually mean?",
            optional=True,
            multiline=True,
        ),
        _text_input_block(
            block_id=TERM_COST_BLOCK_ID,
            action_id=TERM_COST_ACTION_ID,
            label="Default cost ($)",
            placeholder="e.g. 5.00",
            optional=False,
        ),
    ]

    return {
        "type": "modal",
        "callback_id": ADD_TERM_MODAL_CALLBACK_ID,
        "private_metadata": metadata.dumps(),
        "notify_on_close": True,
        "title": _plain(_truncate("Add Jargon", MAX_TITLE_LENGTH)),
        "submit": _plain("Add"),
        "close": _plain("Cancel"),
        "blocks": blocks,
    }
