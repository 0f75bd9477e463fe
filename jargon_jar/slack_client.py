"""Thin wrapper utilities around the Slack WebClient."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from slack_sdk import WebClient


class SlackClient:
    """Encapsulate Slack WebClient interactions for easier testing."""

    def __init__(self, *, token: str | None = None, client: WebClient | None = None) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or WebClient(token=token)

    @property
    def client(self) -> WebClient:
        """Expose the underlying WebClient for advanced use cases."""

        return self._client

    def open_view(self, *, trigger_id: str, view: Mapping[str, Any]) -> Mapping[str, Any]:
        return self._client.views_open(trigger_id=trigger_id, view=dict(view))

    def push_view(self, *, trigger_id: str, view: Mapping[str, Any]) -> Mapping[str, Any]:
        return self._client.views_push(trigger_id=trigger_id, view=dict(view))

    def update_view(
        self,
        *,
        view_id: str,
        view: Mapping[str, Any],
        view_hash: str | None = None,
    ) -> Mapping[str, Any]:
        """Replace an open modal; *view_hash* guards against stale updates."""

        kwargs: dict[str, Any] = {"view_id": view_id, "view": dict(view)}
        if view_hash:
            kwargs["hash"] = view_hash
        return self._client.views_update(**kwargs)

    def post_message(
        self,
        *,
        channel: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]] | None = None,
    ) -> Mapping[str, Any]:
        """Post a message, optionally with Block Kit content, to a Slack channel."""

        if blocks is None:
            return self._client.chat_postMessage(channel=channel, text=text)
        return self._client.chat_postMessage(channel=channel, text=text, blocks=list(blocks))

    def post_ephemeral(
        self,
        *,
        channel: str,
        user: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]] | None = None,
    ) -> Mapping[str, Any]:
        """Post a message only *user* can see."""

        if blocks is None:
            return self._client.chat_postEphemeral(channel=channel, user=user, text=text)
        return self._client.chat_postEphemeral(channel=channel, user=user, text=text, blocks=list(blocks))

    def user_info(self, *, user: str) -> Mapping[str, Any]:
        """Return the ``user`` object from ``users.info``."""

        response = self._client.users_info(user=user)
        return response.get("user") or {}

    def team_info(self, *, team: str | None = None) -> Mapping[str, Any]:
        """Return the ``team`` object from ``team.info``."""

        if team is None:
            response = self._client.team_info()
        else:
            response = self._client.team_info(team=team)
        return response.get("team") or {}

    def oauth_access(
        self,
        *,
        client_id: str,
        client_secret: str,
        code: str,
        redirect_uri: str | None = None,
    ) -> Mapping[str, Any]:
        """Exchange an OAuth ``code`` for workspace tokens via ``oauth.v2.access``."""

        return self._client.oauth_v2_access(
            client_id=client_id,
            client_secret=client_secret,
            code=code,
            redirect_uri=redirect_uri,
        )
