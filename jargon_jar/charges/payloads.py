"""Typed models for Slack interaction payloads.

Slack posts every interactive event to a single URL, distinguished by the
``type`` field. :func:`parse_interaction_payload` validates the raw JSON into
one member of :data:`InteractionPayload` and rejects anything else.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class _SlackModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SlackTeam(_SlackModel):
    id: str
    domain: str | None = None


class SlackUserRef(_SlackModel):
    id: str
    team_id: str | None = None
    username: str | None = None
    name: str | None = None


class ViewState(_SlackModel):
    values: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)


class SlackView(_SlackModel):
    id: str = ""
    hash: str | None = None
    callback_id: str = ""
    private_metadata: str = ""
    root_view_id: str | None = None
    state: ViewState = Field(default_factory=ViewState)


class BlockAction(_SlackModel):
    action_id: str
    block_id: str | None = None
    value: str | None = None
    selected_option: Dict[str, Any] | None = None
    selected_user: str | None = None

    @property
    def selected_value(self) -> str | None:
        if self.selected_option:
            return self.selected_option.get("value")
        return self.value


class _InteractionBase(_SlackModel):
    team: SlackTeam | None = None
    user: SlackUserRef

    @property
    def team_id(self) -> str | None:
        if self.team is not None:
            return self.team.id
        return self.user.team_id


class ViewSubmission(_InteractionBase):
    type: Literal["view_submission"]
    view: SlackView
    trigger_id: str | None = None


class ViewClosed(_InteractionBase):
    type: Literal["view_closed"]
    view: SlackView
    is_cleared: bool = False


class BlockActions(_InteractionBase):
    type: Literal["block_actions"]
    actions: List[BlockAction]
    view: SlackView | None = None
    trigger_id: str | None = None
    channel: Dict[str, Any] | None = None


class BlockSuggestion(_InteractionBase):
    type: Literal["block_suggestion"]
    action_id: str
    block_id: str | None = None
    value: str = ""
    view: SlackView | None = None


InteractionPayload = Annotated[
    Union[ViewSubmission, ViewClosed, BlockActions, BlockSuggestion],
    Field(discriminator="type"),
]

INTERACTION_TYPES = frozenset({"view_submission", "view_closed", "block_actions", "block_suggestion"})

_PAYLOAD_ADAPTER: TypeAdapter[InteractionPayload] = TypeAdapter(InteractionPayload)


class InvalidInteractionError(ValueError):
    """Raised when an interaction payload does not match its declared type."""


class UnknownInteractionError(InvalidInteractionError):
    """Raised for interaction types this app does not handle."""

    def __init__(self, interaction_type: Any) -> None:
        super().__init__(f"Unknown interaction type: {interaction_type!r}")
        self.interaction_type = interaction_type


def parse_interaction_payload(data: Mapping[str, Any]) -> InteractionPayload:
    """Validate *data* into the matching interaction model."""

    interaction_type = data.get("type") if isinstance(data, Mapping) else None
    if interaction_type not in INTERACTION_TYPES:
        raise UnknownInteractionError(interaction_type)

    try:
        return _PAYLOAD_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        raise InvalidInteractionError(f"Invalid {interaction_type} payload") from exc


def _state_entry(values: Mapping[str, Mapping[str, Mapping[str, Any]]], block_id: str, action_id: str) -> Mapping[str, Any]:
    block = values.get(block_id) or {}
    return block.get(action_id) or {}


def state_text(values, block_id: str, action_id: str) -> str | None:
    """Return the stripped text of an input, or ``None`` when blank."""

    raw = _state_entry(values, block_id, action_id).get("value")
    if raw is None:
        return None
    stripped = str(raw).strip()
    return stripped or None


def state_selected_user(values, block_id: str, action_id: str) -> str | None:
    return _state_entry(values, block_id, action_id).get("selected_user") or None


def state_selected_option(values, block_id: str, action_id: str) -> str | None:
    option = _state_entry(values, block_id, action_id).get("selected_option") or {}
    return option.get("value") or None
