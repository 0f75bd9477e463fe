"""Application entry point for the Jargon Jar Slack app."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from urllib.parse import parse_qs, urlencode
from uuid import uuid4

from flask import Flask, jsonify, redirect, request
from pydantic import BaseModel, ValidationError, field_validator
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from slack_bolt.authorization import AuthorizeResult
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from werkzeug.exceptions import HTTPException
from sqlalchemy import text
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from jargon_jar.background import run_async
from jargon_jar.config import AppSettings, get_settings
from jargon_jar.db import session_scope
from jargon_jar.installation import InstallationError, complete_installation
from jargon_jar.leaderboard import clamp_limit, period_start, top_terms_by_frequency, top_users_by_frequency
from jargon_jar.logging_config import configure_logging
from jargon_jar.models import (
    DuplicateTermError,
    TermNotFoundError,
    UserResolutionError,
    Workspace,
    WorkspaceNotFoundError,
)
from jargon_jar.security import (
    SLACK_SIGNATURE_HEADER,
    SLACK_TIMESTAMP_HEADER,
    is_valid_slack_request,
)
from jargon_jar.slack_client import SlackClient
from jargon_jar.charges.commands import (
    CommandAction,
    InvalidCommandError,
    parse_command_text,
    validate_slash_command,
)
from jargon_jar.charges.messages import (
    NOT_INSTALLED_TEXT,
    build_help_message,
    build_resolution_failure_text,
    build_unknown_subcommand_message,
)
from jargon_jar.charges.modals import (
    ADD_NEW_JARGON_ACTION_ID,
    ADD_TERM_MODAL_CALLBACK_ID,
    CHARGE_MODAL_CALLBACK_ID,
    JARGON_ACTION_ID,
    JARGON_BLOCK_ID,
    MAX_STATIC_OPTIONS,
    NEW_TERM_OPTION_VALUE,
    TERM_BLOCK_ID,
    USER_BLOCK_ID,
    ModalMetadata,
    build_add_term_modal,
    build_charge_modal,
    build_term_options,
    parse_modal_metadata,
)
from jargon_jar.charges.notifications import (
    announce_new_term,
    post_charge_confirmation,
    post_ephemeral_notice,
)
from jargon_jar.charges.payloads import (
    BlockActions,
    BlockSuggestion,
    InvalidInteractionError,
    UnknownInteractionError,
    ViewClosed,
    ViewSubmission,
    parse_interaction_payload,
)
from jargon_jar.charges.recorder import (
    SubmissionError,
    parse_charge_submission,
    parse_term_submission,
    record_charge,
    record_term,
)
from jargon_jar.charges.storage import (
    create_term,
    find_term_by_name,
    get_term,
    get_workspace_by_slack_id,
    list_terms,
    require_workspace,
    search_terms,
    to_term_summary,
)

SIGNIN_PATH = "/auth/signin"


def _authorize(enterprise_id, team_id, logger):
    """Resolve the bot token for *team_id* so each request gets its own client."""

    bot_token = None
    with session_scope() as session:
        workspace = get_workspace_by_slack_id(session, team_id)
        if workspace is not None:
            bot_token = workspace.bot_token

    bot_token = bot_token or get_settings().bot_token
    if not bot_token:
        logger.warning("No bot token available for team", extra={"team_id": team_id})
        return None

    return AuthorizeResult(enterprise_id=enterprise_id, team_id=team_id, bot_token=bot_token)


def _create_bolt_app(settings: AppSettings) -> SlackApp:
    """Initialise the Slack Bolt application using validated settings.

    Signatures are checked by the Flask routes before Bolt sees a request.
    Teams that ``_authorize`` cannot resolve get ``NOT_INSTALLED_TEXT`` from
    Bolt itself; with a fallback bot token the handlers reply instead.
    """

    return SlackApp(
        signing_secret=settings.signing_secret,
        authorize=_authorize,
        request_verification_enabled=False,
        user_facing_authorize_error_message=NOT_INSTALLED_TEXT,
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        if isinstance(error, HTTPException):
            return error
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _error_code(exc: SlackApiError) -> str:
    return exc.response.get("error") if getattr(exc, "response", None) else str(exc)


def _open_modal(client, trigger_id: str, view: dict, logger) -> None:
    logger.info("Attempting to open modal", extra={"callback_id": view.get("callback_id")})
    try:
        SlackClient(client=client).open_view(trigger_id=trigger_id, view=view)
        logger.info("Modal open call succeeded", extra={"callback_id": view.get("callback_id")})
    except SlackApiError as exc:  # pragma: no cover - network dependent
        structlog.get_logger().error("webhook_failed", operation="views_open", error=_error_code(exc))
        logger.error(
            "Failed to open modal",
            extra={"callback_id": view.get("callback_id"), "error": _error_code(exc)},
        )


def _push_modal(client, trigger_id: str, view: dict, logger) -> None:
    try:
        SlackClient(client=client).push_view(trigger_id=trigger_id, view=view)
    except SlackApiError as exc:  # pragma: no cover - network dependent
        structlog.get_logger().error("webhook_failed", operation="views_push", error=_error_code(exc))
        logger.error("Failed to push modal", extra={"error": _error_code(exc)})


def _update_modal(
    client,
    view_id: str,
    view: dict,
    logger,
    view_hash: str | None = None,
) -> None:
    try:
        SlackClient(client=client).update_view(view_id=view_id, view=view, view_hash=view_hash)
    except SlackApiError as exc:  # pragma: no cover - network dependent
        # hash_conflict means the user changed the modal again; the newer update wins
        structlog.get_logger().warning("webhook_failed", operation="views_update", error=_error_code(exc))
        logger.warning("Failed to update modal", extra={"view_id": view_id, "error": _error_code(exc)})


def _resolve_workspace_id(session, metadata: ModalMetadata | None, team_id: str | None) -> int | None:
    if metadata is not None and metadata.workspace_id is not None:
        return metadata.workspace_id
    workspace = get_workspace_by_slack_id(session, team_id)
    return workspace.id if workspace is not None else None


def _handle_jargon_command(ack, command, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        settings = get_settings()
        context = parse_command_text(command.get("text"), unknown_policy=settings.unknown_subcommand_policy)
        channel_id = command.get("channel_id")
        user_id = command.get("user_id")
        team_id = command.get("team_id")

        log = log.bind(team_id=team_id, user_id=user_id)
        log.info(
            "slash_command_received",
            command=command.get("command"),
            subcommand=context.subcommand,
            action=context.action.value,
        )

        if context.action in (CommandAction.HELP, CommandAction.UNKNOWN):
            if context.action is CommandAction.HELP:
                message = build_help_message(settings.slash_command)
            else:
                message = build_unknown_subcommand_message(context.subcommand, settings.slash_command)
            ack()
            run_async(
                post_ephemeral_notice,
                client=client,
                channel_id=channel_id,
                user_id=user_id,
                text=message["text"],
                blocks=message["blocks"],
                logger=logger,
                trace_id=trace_id,
            )
            return

        with session_scope() as session:
            workspace = get_workspace_by_slack_id(session, team_id)
            if workspace is None:
                ack({"response_type": "ephemeral", "text": NOT_INSTALLED_TEXT})
                log.warning("slash_command_workspace_missing")
                return
            workspace_id = workspace.id
            terms = []
            if context.action is CommandAction.CHARGE:
                terms = list_terms(session, workspace_id=workspace_id, limit=MAX_STATIC_OPTIONS)

        metadata = ModalMetadata(workspace_id=workspace_id, channel_id=channel_id, charging_user_id=user_id)
        if context.action is CommandAction.ADD_TERM:
            view = build_add_term_modal(metadata, initial_term=context.args or None)
        else:
            view = build_charge_modal(terms, metadata)

        ack()
        run_async(
            _open_modal,
            client,
            command.get("trigger_id"),
            view,
            logger,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _register_slash_handlers(bolt_app: SlackApp, settings: AppSettings) -> None:
    @bolt_app.command(settings.slash_command)
    def handle_jargon(ack, command, client, logger):
        _handle_jargon_command(ack=ack, command=command, client=client, logger=logger)


def _handle_charge_submission(ack, body, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        payload = ViewSubmission.model_validate(body)
        try:
            metadata = parse_modal_metadata(payload.view.private_metadata)
        except ValueError as exc:
            ack({"response_action": "errors", "errors": {USER_BLOCK_ID: str(exc)}})
            log.warning("charge_metadata_invalid")
            return

        try:
            submission = parse_charge_submission(payload.view.state.values)
        except SubmissionError as exc:
            ack(exc.as_response())
            log.info("charge_validation_failed", block_id=exc.block_id)
            return

        charging_slack_id = payload.user.id or metadata.charging_user_id
        log = log.bind(user_id=charging_slack_id, channel=metadata.channel_id)

        try:
            with session_scope() as session:
                workspace = require_workspace(
                    session, workspace_id=metadata.workspace_id, slack_id=payload.team_id
                )
                receipt = record_charge(
                    session,
                    workspace=workspace,
                    submission=submission,
                    charging_slack_id=charging_slack_id,
                    channel_id=metadata.channel_id,
                    slack_client=SlackClient(client=client),
                )
        except WorkspaceNotFoundError:
            ack({"response_action": "errors", "errors": {USER_BLOCK_ID: NOT_INSTALLED_TEXT}})
            log.warning("charge_workspace_missing", team_id=payload.team_id)
            return
        except UserResolutionError as exc:
            ack(
                {
                    "response_action": "errors",
                    "errors": {USER_BLOCK_ID: "We couldn't look up everyone involved. Please try again."},
                }
            )
            log.warning("charge_user_resolution_failed", slack_user_id=exc.slack_id)
            run_async(
                post_ephemeral_notice,
                client=client,
                channel_id=metadata.channel_id,
                user_id=charging_slack_id,
                text=build_resolution_failure_text(),
                logger=logger,
                trace_id=trace_id,
            )
            return
        except TermNotFoundError:
            ack({"response_action": "errors", "errors": {JARGON_BLOCK_ID: "That jargon term no longer exists."}})
            log.info("charge_term_missing", term_id=submission.term_id)
            return

        ack()
        log.info(
            "charge_recorded",
            charge_id=receipt.charge_id,
            workspace_id=receipt.workspace_id,
            term_id=receipt.term_id,
            amount=str(receipt.amount),
            created_term=receipt.created_term,
        )

        run_async(
            post_charge_confirmation,
            client=client,
            receipt=receipt,
            logger=logger,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _handle_add_term_submission(ack, body, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        payload = ViewSubmission.model_validate(body)
        try:
            metadata = parse_modal_metadata(payload.view.private_metadata)
        except ValueError as exc:
            ack({"response_action": "errors", "errors": {TERM_BLOCK_ID: str(exc)}})
            log.warning("add_term_metadata_invalid")
            return

        try:
            submission = parse_term_submission(payload.view.state.values)
        except SubmissionError as exc:
            ack(exc.as_response())
            log.info("add_term_validation_failed", block_id=exc.block_id)
            return

        parent_terms = []
        try:
            with session_scope() as session:
                workspace = require_workspace(
                    session, workspace_id=metadata.workspace_id, slack_id=payload.team_id
                )
                term = record_term(
                    session,
                    workspace=workspace,
                    submission=submission,
                    creator_slack_id=payload.user.id,
                    slack_client=SlackClient(client=client),
                )
                workspace_id = workspace.id
                if metadata.parent_view_id:
                    parent_terms = list_terms(session, workspace_id=workspace_id, limit=MAX_STATIC_OPTIONS)
        except WorkspaceNotFoundError:
            ack({"response_action": "errors", "errors": {TERM_BLOCK_ID: NOT_INSTALLED_TEXT}})
            log.warning("add_term_workspace_missing", team_id=payload.team_id)
            return
        except DuplicateTermError:
            ack({"response_action": "errors", "errors": {TERM_BLOCK_ID: "That jargon term already exists."}})
            log.info("add_term_duplicate")
            return

        ack()
        log.info("jargon_term_created", term_id=term.id, workspace_id=workspace_id)

        run_async(
            announce_new_term,
            client=client,
            term=term,
            channel_id=metadata.channel_id,
            creator_id=payload.user.id,
            logger=logger,
            trace_id=trace_id,
        )

        if metadata.parent_view_id:
            parent_metadata = ModalMetadata(
                workspace_id=workspace_id,
                channel_id=metadata.channel_id,
                charging_user_id=metadata.charging_user_id,
            )
            run_async(
                _update_modal,
                client,
                metadata.parent_view_id,
                build_charge_modal(parent_terms, parent_metadata, selected_term=term),
                logger,
                trace_id=trace_id,
            )
    finally:
        unbind_contextvars("trace_id")


def _handle_view_closed(ack, body, logger):
    ack()
    try:
        payload = ViewClosed.model_validate(body)
    except ValidationError:
        logger.warning("Malformed view_closed payload")
        return
    structlog.get_logger().info(
        "modal_closed",
        callback_id=payload.view.callback_id,
        user_id=payload.user.id,
        is_cleared=payload.is_cleared,
    )


def _register_view_handlers(bolt_app: SlackApp) -> None:
    @bolt_app.view(CHARGE_MODAL_CALLBACK_ID)
    def handle_charge_submission(ack, body, client, logger):
        _handle_charge_submission(ack=ack, body=body, client=client, logger=logger)

    @bolt_app.view(ADD_TERM_MODAL_CALLBACK_ID)
    def handle_add_term_submission(ack, body, client, logger):
        _handle_add_term_submission(ack=ack, body=body, client=client, logger=logger)

    @bolt_app.view_closed(CHARGE_MODAL_CALLBACK_ID)
    def handle_charge_closed(ack, body, logger):
        _handle_view_closed(ack=ack, body=body, logger=logger)

    @bolt_app.view_closed(ADD_TERM_MODAL_CALLBACK_ID)
    def handle_add_term_closed(ack, body, logger):
        _handle_view_closed(ack=ack, body=body, logger=logger)


def _handle_jargon_select_action(ack, body, client, logger):
    ack()
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        payload = BlockActions.model_validate(body)
        view = payload.view
        if view is None or view.callback_id != CHARGE_MODAL_CALLBACK_ID:
            log.info("jargon_select_ignored", reason="not_charge_modal")
            return

        action = next((item for item in payload.actions if item.action_id == JARGON_ACTION_ID), None)
        selected = action.selected_value if action is not None else None

        try:
            metadata = parse_modal_metadata(view.private_metadata)
        except ValueError:
            log.warning("jargon_select_metadata_invalid")
            return

        selected_term = None
        with session_scope() as session:
            workspace_id = _resolve_workspace_id(session, metadata, payload.team_id)
            terms = list_terms(session, workspace_id=workspace_id, limit=MAX_STATIC_OPTIONS)
            if selected and selected != NEW_TERM_OPTION_VALUE:
                try:
                    selected_term = to_term_summary(get_term(session, workspace_id=workspace_id, term_id=selected))
                except TermNotFoundError:
                    log.warning("jargon_select_term_missing", term_id=selected)

        updated = build_charge_modal(
            terms,
            metadata,
            selected_term=selected_term,
            new_term=selected == NEW_TERM_OPTION_VALUE,
        )
        log.info("jargon_select_changed", term_id=selected)
        run_async(
            _update_modal,
            client,
            view.id,
            updated,
            logger,
            view_hash=view.hash,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _handle_add_new_jargon_action(ack, body, client, logger):
    ack()
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        payload = BlockActions.model_validate(body)
        view = payload.view
        if view is None or not payload.trigger_id:
            log.warning("add_new_jargon_missing_view")
            return

        try:
            metadata = parse_modal_metadata(view.private_metadata)
        except ValueError:
            log.warning("add_new_jargon_metadata_invalid")
            return

        pushed = build_add_term_modal(
            ModalMetadata(
                workspace_id=metadata.workspace_id,
                channel_id=metadata.channel_id,
                charging_user_id=metadata.charging_user_id,
                parent_view_id=view.id,
            )
        )
        log.info("add_term_modal_pushed", parent_view_id=view.id)
        run_async(_push_modal, client, payload.trigger_id, pushed, logger, trace_id=trace_id)
    finally:
        unbind_contextvars("trace_id")


def _register_action_handlers(bolt_app: SlackApp) -> None:
    @bolt_app.action(JARGON_ACTION_ID)
    def handle_jargon_select(ack, body, client, logger):
        _handle_jargon_select_action(ack=ack, body=body, client=client, logger=logger)

    @bolt_app.action(ADD_NEW_JARGON_ACTION_ID)
    def handle_add_new_jargon(ack, body, client, logger):
        _handle_add_new_jargon_action(ack=ack, body=body, client=client, logger=logger)


def _handle_jargon_suggestion(ack, body, logger):
    payload = BlockSuggestion.model_validate(body)
    settings = get_settings()

    metadata = None
    if payload.view is not None and payload.view.private_metadata:
        try:
            metadata = parse_modal_metadata(payload.view.private_metadata)
        except ValueError:
            metadata = None

    with session_scope() as session:
        workspace = get_workspace_by_slack_id(session, payload.team_id)
        if workspace is not None:
            workspace_id = workspace.id
        else:
            workspace_id = _resolve_workspace_id(session, metadata, None)
        terms = search_terms(session, workspace_id=workspace_id, query=payload.value, limit=settings.suggestion_limit)

    structlog.get_logger().info("jargon_suggestions_served", workspace_id=workspace_id, count=len(terms))
    ack(options=build_term_options(terms))


def _register_options_handlers(bolt_app: SlackApp) -> None:
    @bolt_app.options(JARGON_ACTION_ID)
    def handle_jargon_options(ack, body, logger):
        _handle_jargon_suggestion(ack=ack, body=body, logger=logger)


def _json_error(error: str, status: int, **extra):
    response = jsonify({"error": error, **extra})
    response.status_code = status
    return response


def _verify_slack_signature(raw_body: str, settings: AppSettings) -> bool:
    return is_valid_slack_request(
        signing_secret=settings.signing_secret,
        timestamp=request.headers.get(SLACK_TIMESTAMP_HEADER, ""),
        body=raw_body,
        signature=request.headers.get(SLACK_SIGNATURE_HEADER, ""),
    )


def _decode_form(raw_body: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(raw_body, keep_blank_values=True).items()}


class JargonTermCreate(BaseModel):
    term: str
    default_cost: Decimal
    workspace_id: int
    description: str | None = None
    created_by: int | None = None

    @field_validator("term")
    @classmethod
    def _strip_term(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("term must not be blank")
        return value

    @field_validator("default_cost")
    @classmethod
    def _ensure_positive(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("default_cost must be a positive number")
        return value.quantize(Decimal("0.01"))


def _term_json(term) -> dict:
    return {
        "id": term.id,
        "term": term.term,
        "description": term.description,
        "default_cost": float(term.default_cost),
    }


def _parse_workspace_id(raw: str | None) -> int | None:
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


def _register_api_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/jargon/create", methods=["POST"])
    def create_jargon_term():
        try:
            payload = JargonTermCreate.model_validate(request.get_json(silent=True) or {})
        except ValidationError as exc:
            fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
            return _json_error(
                "Missing required fields: term, default_cost, and workspace_id are required",
                400,
                fields=fields,
            )

        with session_scope() as session:
            if session.get(Workspace, payload.workspace_id) is None:
                return _json_error("Workspace not found", 404)
            try:
                row = create_term(
                    session,
                    workspace_id=payload.workspace_id,
                    term=payload.term,
                    description=payload.description,
                    default_cost=payload.default_cost,
                    created_by=payload.created_by,
                )
            except DuplicateTermError:
                return _json_error("Jargon term already exists", 409)
            term = to_term_summary(row)

        structlog.get_logger().info("jargon_term_created", term_id=term.id, workspace_id=payload.workspace_id, source="api")
        return jsonify({"success": True, "message": "Jargon term created successfully", "term": _term_json(term)})

    @flask_app.route("/api/jargon/exists", methods=["GET"])
    def jargon_term_exists():
        term_text = (request.args.get("term") or "").strip()
        workspace_id = _parse_workspace_id(request.args.get("workspace_id"))
        if not term_text or workspace_id is None:
            return _json_error("Missing required parameters", 400)

        with session_scope() as session:
            row = find_term_by_name(session, workspace_id=workspace_id, term=term_text)
            if row is None:
                return jsonify({"exists": False})
            term = to_term_summary(row)

        return jsonify({"exists": True, **_term_json(term)})

    @flask_app.route("/api/leaderboard/users/frequency", methods=["GET"])
    def leaderboard_users_frequency():
        workspace_id = _parse_workspace_id(request.args.get("workspace_id"))
        if workspace_id is None:
            return _json_error("workspace_id is required", 400)
        try:
            since = period_start(request.args.get("time_period"))
        except ValueError as exc:
            return _json_error(str(exc), 400)

        with session_scope() as session:
            rows = top_users_by_frequency(
                session,
                workspace_id=workspace_id,
                limit=clamp_limit(request.args.get("limit")),
                since=since,
            )

        data = [
            {
                "user_id": row.user_id,
                "slack_id": row.slack_id,
                "display_name": row.display_name,
                "avatar_url": row.avatar_url,
                "charge_count": row.charge_count,
                "total_amount": float(row.total_amount),
            }
            for row in rows
        ]
        return jsonify({"data": data})

    @flask_app.route("/api/leaderboard/jargon/frequency", methods=["GET"])
    def leaderboard_jargon_frequency():
        workspace_id = _parse_workspace_id(request.args.get("workspace_id"))
        if workspace_id is None:
            return _json_error("workspace_id is required", 400)
        try:
            since = period_start(request.args.get("time_period"))
        except ValueError as exc:
            return _json_error(str(exc), 400)

        with session_scope() as session:
            rows = top_terms_by_frequency(
                session,
                workspace_id=workspace_id,
                limit=clamp_limit(request.args.get("limit")),
                since=since,
            )

        data = [
            {
                "term_id": row.term_id,
                "term": row.term,
                "description": row.description,
                "usage_count": row.usage_count,
                "total_amount": float(row.total_amount),
            }
            for row in rows
        ]
        return jsonify({"data": data})


def _signin_redirect(reason: str):
    return redirect(f"{SIGNIN_PATH}?{urlencode({'error': reason})}")


def _handle_oauth_callback():
    settings = get_settings()
    log = structlog.get_logger().bind(path=request.path)

    if request.args.get("error"):
        log.info("oauth_denied", error=request.args.get("error"))
        return _signin_redirect("Access denied")

    code = request.args.get("code")
    if not code:
        log.warning("oauth_code_missing")
        return _signin_redirect("No code provided")

    if not settings.oauth_enabled:
        log.error("oauth_not_configured")
        return _signin_redirect("Server configuration error")

    try:
        with session_scope() as session:
            complete_installation(
                session,
                code=code,
                client_id=settings.client_id,
                client_secret=settings.client_secret,
                redirect_uri=request.base_url,
                client_factory=WebClient,
            )
    except InstallationError as exc:
        return _signin_redirect(exc.reason)

    return redirect(settings.dashboard_url)


def _register_auth_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/auth/slack/callback", methods=["GET"])
    def slack_install_callback():
        return _handle_oauth_callback()

    @flask_app.route("/auth/callback", methods=["GET"])
    def slack_signin_callback():
        return _handle_oauth_callback()


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    settings = get_settings()
    bolt_app = _create_bolt_app(settings)
    handler = SlackRequestHandler(bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")

    _register_error_handlers(flask_app)
    _register_slash_handlers(bolt_app, settings)
    _register_view_handlers(bolt_app)
    _register_action_handlers(bolt_app)
    _register_options_handlers(bolt_app)
    _register_api_routes(flask_app)
    _register_auth_routes(flask_app)

    @flask_app.route("/api/slack/commands", methods=["POST"])
    def slack_commands():
        raw_body = request.get_data(as_text=True)
        if not _verify_slack_signature(raw_body, settings):
            return _json_error("invalid_signature", 401)

        try:
            validate_slash_command(_decode_form(raw_body))
        except InvalidCommandError as exc:
            return _json_error("invalid_command", 400, missing=exc.missing)

        return handler.handle(request)

    @flask_app.route("/api/slack/interactions", methods=["POST"])
    def slack_interactions():
        raw_body = request.get_data(as_text=True)
        if not _verify_slack_signature(raw_body, settings):
            return _json_error("invalid_signature", 401)

        raw_payload = _decode_form(raw_body).get("payload")
        if not raw_payload:
            return _json_error("missing_payload", 400)

        try:
            parse_interaction_payload(json.loads(raw_payload))
        except json.JSONDecodeError:
            return _json_error("invalid_payload", 400)
        except UnknownInteractionError as exc:
            structlog.get_logger().warning("interaction_type_unknown", interaction_type=str(exc.interaction_type))
            return _json_error("unknown_interaction_type", 400)
        except InvalidInteractionError:
            return _json_error("invalid_payload", 400)

        return handler.handle(request)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")

        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:  # pragma: no cover - settings already loaded above
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000, debug=True)
