"""Validators and helpers for the Jargon Jar slash command."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError


class CommandAction(str, Enum):
    CHARGE = "charge"
    ADD_TERM = "add_term"
    HELP = "help"
    UNKNOWN = "unknown"


_SUBCOMMANDS = {
    "": CommandAction.CHARGE,
    "charge": CommandAction.CHARGE,
    "new": CommandAction.ADD_TERM,
    "add-term": CommandAction.ADD_TERM,
    "addterm": CommandAction.ADD_TERM,
    "help": CommandAction.HELP,
}


@dataclass(frozen=True)
class CommandContext:
    action: CommandAction
    subcommand: str
    args: str = ""


class SlashCommand(BaseModel):
    """Form fields Slack posts for a slash command invocation."""

    command: str = ""
    text: str = ""
    user_id: str = ""
    trigger_id: str
    channel_id: str
    team_id: str


class InvalidCommandError(ValueError):
    """Raised when required slash command fields are missing."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing required command fields: {', '.join(missing)}")
        self.missing = missing


def validate_slash_command(form: Mapping[str, Any]) -> SlashCommand:
    """Validate a decoded slash-command form, requiring trigger/channel/team ids."""

    try:
        command = SlashCommand.model_validate(dict(form))
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors()]
        raise InvalidCommandError(missing) from exc

    missing = [name for name in ("trigger_id", "channel_id", "team_id") if not getattr(command, name).strip()]
    if missing:
        raise InvalidCommandError(missing)
    return command


def parse_command_text(text: str | None, *, unknown_policy: str = "charge") -> CommandContext:
    """Split command text into a subcommand and its arguments.

    Unrecognised subcommands resolve to ``CHARGE`` under the ``charge``
    policy and to ``UNKNOWN`` under the ``error`` policy.
    """

    parts = (text or "").strip().split(maxsplit=1)
    subcommand = parts[0].lower() if parts else ""
    args = parts[1].strip() if len(parts) > 1 else ""

    action = _SUBCOMMANDS.get(subcommand)
    if action is None:
        action = CommandAction.UNKNOWN if unknown_policy == "error" else CommandAction.CHARGE
    return CommandContext(action=action, subcommand=subcommand, args=args)
