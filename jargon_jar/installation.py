"""Slack OAuth install and sign-in handling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
import structlog
from sqlalchemy.orm import Session

from jargon_jar.charges import storage
from jargon_jar.slack_client import SlackClient

ClientFactory = Callable[..., WebClient]


class InstallationError(Exception):
    """Raised when the OAuth exchange cannot be completed.

    ``reason`` is safe to show to the user on the sign-in page.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class InstallationResult:
    workspace_id: int
    team_id: str
    team_name: str
    user_id: int
    slack_user_id: str
    installed: bool


def _slack_error(exc: SlackApiError) -> str:
    return exc.response.get("error") if getattr(exc, "response", None) else str(exc)


def exchange_code(
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str | None,
    client_factory: ClientFactory = WebClient,
) -> Mapping[str, Any]:
    """Call ``oauth.v2.access`` and return the raw response data."""

    log = structlog.get_logger()
    slack_client = SlackClient(client=client_factory())
    try:
        response = slack_client.oauth_access(
            client_id=client_id,
            client_secret=client_secret,
            code=code,
            redirect_uri=redirect_uri,
        )
    except SlackApiError as exc:
        log.warning("oauth_exchange_failed", error=_slack_error(exc))
        raise InstallationError("Failed to exchange code") from exc

    data = getattr(response, "data", response)
    if not data.get("ok", True) or not data.get("authed_user") or not data.get("team"):
        log.warning("oauth_exchange_incomplete", error=data.get("error"))
        raise InstallationError("Failed to exchange code")
    return data


def complete_installation(
    session: Session,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str | None,
    client_factory: ClientFactory = WebClient,
) -> InstallationResult:
    """Exchange *code* and upsert the workspace and the authorising user.

    An install response carries a bot token and refreshes the workspace row.
    A sign-in response only carries a user token, so the workspace must
    already be installed.
    """

    data = exchange_code(
        code=code,
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        client_factory=client_factory,
    )

    team = data.get("team") or {}
    authed_user = data.get("authed_user") or {}
    team_id = team.get("id")
    slack_user_id = authed_user.get("id")
    user_token = authed_user.get("access_token")
    bot_token = data.get("access_token")
    installed = bool(bot_token)
    if not team_id or not slack_user_id:
        raise InstallationError("Failed to exchange code")

    log = structlog.get_logger().bind(team_id=team_id, user_id=slack_user_id)

    existing = storage.get_workspace_by_slack_id(session, team_id)
    if not installed:
        if existing is None:
            log.warning("oauth_sign_in_without_install")
            raise InstallationError("Jargon Jar is not installed in this workspace")
        bot_token = existing.bot_token

    bot_client = SlackClient(client=client_factory(token=bot_token))

    try:
        team_details = bot_client.team_info(team=team_id)
    except SlackApiError as exc:
        log.warning("oauth_team_info_failed", error=_slack_error(exc))
        raise InstallationError("Failed to get team info") from exc

    try:
        user_details = bot_client.user_info(user=slack_user_id)
    except SlackApiError as exc:
        log.warning("oauth_user_info_failed", error=_slack_error(exc))
        raise InstallationError("Failed to get user info") from exc
    if not user_details:
        raise InstallationError("Failed to get user info")

    if installed:
        workspace = storage.upsert_workspace(
            session,
            slack_id=team_id,
            name=team.get("name") or team_details.get("name") or team_id,
            domain=team_details.get("domain"),
            bot_token=bot_token,
            user_token=user_token or (existing.user_token if existing is not None else None),
        )
    else:
        workspace = existing

    profile = storage.profile_from_slack_user(user_details)
    user = storage.upsert_user(
        session,
        workspace_id=workspace.id,
        slack_id=slack_user_id,
        email=profile["email"],
        display_name=profile["display_name"],
        avatar_url=profile["avatar_url"],
    )

    log.info("oauth_completed", workspace_id=workspace.id, installed=installed)
    return InstallationResult(
        workspace_id=workspace.id,
        team_id=team_id,
        team_name=workspace.name,
        user_id=user.id,
        slack_user_id=slack_user_id,
        installed=installed,
    )
