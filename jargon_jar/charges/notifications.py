"""Best-effort Slack notifications sent after a webhook is acknowledged."""

from __future__ import annotations

from slack_sdk.errors import SlackApiError
import structlog

from jargon_jar.slack_client import SlackClient

from .messages import build_charge_confirmation, build_term_announcement
from .recorder import ChargeReceipt
from .storage import TermSummary


def _error_details(exc: SlackApiError) -> tuple[str, int | None]:
    status_code = getattr(exc.response, "status_code", None) if getattr(exc, "response", None) else None
    error_code = exc.response.get("error") if getattr(exc, "response", None) else str(exc)
    return error_code, status_code


def post_charge_confirmation(*, client, receipt: ChargeReceipt, logger) -> bool:
    """Announce a recorded charge in its channel.

    Failure is logged and swallowed; the charge row stays written.
    """

    slack_client = SlackClient(client=client)
    log = structlog.get_logger().bind(charge_id=receipt.charge_id, channel=receipt.channel_id)
    message = build_charge_confirmation(
        charging_user_id=receipt.charging_user_id,
        charged_user_id=receipt.charged_user_id,
        term=receipt.term,
        amount=receipt.amount,
        note=receipt.note,
    )

    try:
        slack_client.post_message(channel=receipt.channel_id, text=message["text"], blocks=message["blocks"])
    except SlackApiError as exc:  # pragma: no cover - depends on Slack API behaviour
        error_code, status_code = _error_details(exc)
        log.error(
            "webhook_failed",
            operation="post_charge_confirmation",
            error=error_code,
            status_code=status_code,
        )
        logger.error(
            "Failed to post charge confirmation",
            extra={"charge_id": receipt.charge_id, "channel": receipt.channel_id, "error": error_code},
        )
        return False

    log.info("charge_confirmation_posted")
    return True


def announce_new_term(
    *,
    client,
    term: TermSummary,
    channel_id: str,
    creator_id: str | None,
    logger,
) -> bool:
    """Tell the channel a jargon term was added."""

    slack_client = SlackClient(client=client)
    log = structlog.get_logger().bind(term_id=term.id, channel=channel_id)
    message = build_term_announcement(
        creator_id=creator_id,
        term=term.term,
        default_cost=term.default_cost,
        description=term.description,
    )

    try:
        slack_client.post_message(channel=channel_id, text=message["text"], blocks=message["blocks"])
    except SlackApiError as exc:  # pragma: no cover - depends on Slack API behaviour
        error_code, status_code = _error_details(exc)
        log.error("webhook_failed", operation="announce_new_term", error=error_code, status_code=status_code)
        logger.error(
            "Failed to announce new jargon term",
            extra={"term_id": term.id, "channel": channel_id, "error": error_code},
        )
        return False

    log.info("term_announcement_posted")
    return True


def post_ephemeral_notice(*, client, channel_id: str, user_id: str, text: str, logger, blocks=None) -> bool:
    """Send an ephemeral message; failures are only logged."""

    slack_client = SlackClient(client=client)
    try:
        slack_client.post_ephemeral(channel=channel_id, user=user_id, text=text, blocks=blocks)
    except SlackApiError as exc:  # pragma: no cover - depends on Slack API behaviour
        error_code, status_code = _error_details(exc)
        structlog.get_logger().warning(
            "webhook_failed",
            operation="post_ephemeral",
            channel=channel_id,
            error=error_code,
            status_code=status_code,
        )
        logger.warning("Failed to post ephemeral message", extra={"channel": channel_id, "error": error_code})
        return False
    return True
