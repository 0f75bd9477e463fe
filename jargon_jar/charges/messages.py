"""Block Kit message builders for charges, new terms and help."""

from __future__ import annotations

from typing import Any, Dict, List

from .modals import format_cost

NOT_INSTALLED_TEXT = "Jargon Jar isn't installed in this workspace yet. Ask an admin to add it first."


def build_help_message(command: str = "/jargon") -> Dict[str, Any]:
    """Return the ephemeral help message for the slash command."""

    lines = [
        f"`{command}` or `{command} charge` - charge someone for using jargon",
        f"`{command} new [term]` - add a new jargon term (also `add-term`)",
        f"`{command} help` - show this message",
    ]
    blocks: List[Dict[str, Any]] = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": "*Jargon Jar* :moneybag: keeps the buzzwords honest."},
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": "\n".join(lines)},
        },
    ]
    return {"text": "Jargon Jar help", "blocks": blocks}


def build_unknown_subcommand_message(subcommand: str, command: str = "/jargon") -> Dict[str, Any]:
    help_message = build_help_message(command)
    blocks = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f":thinking_face: I don't know `{subcommand}`."},
        },
        *help_message["blocks"],
    ]
    return {"text": f"Unknown subcommand: {subcommand}", "blocks": blocks}


def build_charge_confirmation(
    *,
    charging_user_id: str,
    charged_user_id: str,
    term: str,
    amount,
    note: str | None = None,
) -> Dict[str, Any]:
    """Return the public message announcing a charge."""

    text = (
        f":dollar: <@{charging_user_id}> just charged <@{charged_user_id}> "
        f"{format_cost(amount)} for using \"{term}\"! Add it to the jar! :money_with_wings:"
    )
    blocks: List[Dict[str, Any]] = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]
    if note:
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": f"> {note}"}]})
    return {"text": text, "blocks": blocks}


def build_term_announcement(*, creator_id: str | None, term: str, default_cost, description: str | None) -> Dict[str, Any]:
    """Return the public message announcing a new jargon term."""

    who = f"<@{creator_id}>" if creator_id else "Someone"
    text = f":books: {who} added *{term}* to the jargon list ({format_cost(default_cost)} per use)."
    blocks: List[Dict[str, Any]] = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]
    if description:
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": description}]})
    return {"text": f"New jargon term: {term}", "blocks": blocks}


def build_resolution_failure_text() -> str:
    return "Sorry, I couldn't look up everyone involved in that charge, so nothing was recorded. Please try again."
