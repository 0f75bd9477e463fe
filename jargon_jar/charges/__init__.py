"""Slash command, modal and charge-recording helpers."""

from .commands import CommandAction, CommandContext, InvalidCommandError, parse_command_text, validate_slash_command
from .modals import (
    ADD_NEW_JARGON_ACTION_ID,
    ADD_TERM_MODAL_CALLBACK_ID,
    CHARGE_MODAL_CALLBACK_ID,
    JARGON_ACTION_ID,
    JARGON_BLOCK_ID,
    NEW_TERM_OPTION_VALUE,
    USER_BLOCK_ID,
    ModalMetadata,
    build_add_term_modal,
    build_charge_modal,
    build_term_options,
    parse_modal_metadata,
)
from .payloads import (
    InvalidInteractionError,
    UnknownInteractionError,
    parse_interaction_payload,
)
from .recorder import (
    ChargeReceipt,
    ChargeSubmission,
    SubmissionError,
    TermSubmission,
    parse_charge_submission,
    parse_term_submission,
    record_charge,
    record_term,
)

__all__ = [
    "CommandAction",
    "CommandContext",
    "InvalidCommandError",
    "parse_command_text",
    "validate_slash_command",
    "ADD_NEW_JARGON_ACTION_ID",
    "ADD_TERM_MODAL_CALLBACK_ID",
    "CHARGE_MODAL_CALLBACK_ID",
    "JARGON_ACTION_ID",
    "JARGON_BLOCK_ID",
    "NEW_TERM_OPTION_VALUE",
    "USER_BLOCK_ID",
    "ModalMetadata",
    "build_add_term_modal",
    "build_charge_modal",
    "build_term_options",
    "parse_modal_metadata",
    "InvalidInteractionError",
    "UnknownInteractionError",
    "parse_interaction_payload",
    "ChargeReceipt",
    "ChargeSubmission",
    "SubmissionError",
    "TermSubmission",
    "parse_charge_submission",
    "parse_term_submission",
    "record_charge",
    "record_term",
]
