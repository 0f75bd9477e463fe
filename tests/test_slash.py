"""Tests for the slash command handler."""

from decimal import Decimal
import json
import logging
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import app as app_module  # noqa: E402
from jargon_jar import config  # noqa: E402
from jargon_jar.charges.messages import NOT_INSTALLED_TEXT  # noqa: E402
from jargon_jar.db import get_engine, get_session_factory, session_scope  # noqa: E402
from jargon_jar.models import Base, JargonTerm, Workspace  # noqa: E402


@pytest.fixture(autouse=True)
def settings_env(monkeypatch, tmp_path):
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.delenv("UNKNOWN_SUBCOMMAND_POLICY", raising=False)
    monkeypatch.delenv("SLACK_COMMAND", raising=False)
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    Base.metadata.create_all(get_engine())
    yield tmp_path
    Base.metadata.drop_all(get_engine())
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


@pytest.fixture
def workspace_id():
    with session_scope() as session:
        workspace = Workspace(slack_id="T1", name="Acme", bot_token="xoxb-1")
        session.add(workspace)
        session.flush()
        session.add(JargonTerm(term="synergy", default_cost=Decimal("5.00"), workspace_id=workspace.id))
        session.add(JargonTerm(term="bandwidth", default_cost=Decimal("1.00"), workspace_id=None))
        return workspace.id


class DummyClient:
    def __init__(self):
        self.calls = []

    def views_open(self, trigger_id, view):
        self.calls.append(("views_open", {"trigger_id": trigger_id, "view": view}))
        return {"ok": True}

    def chat_postEphemeral(self, **kwargs):
        self.calls.append(("chat_postEphemeral", kwargs))
        return {"ok": True}


def run_async_sync(func, /, *args, **kwargs):
    kwargs.pop("trace_id", None)
    return func(*args, **kwargs)


def _command(text=""):
    return {
        "command": "/jargon",
        "text": text,
        "user_id": "U1",
        "channel_id": "C1",
        "team_id": "T1",
        "trigger_id": "trigger-123",
    }


def _run(command, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    client = DummyClient()
    ack_calls = []

    def ack(payload=None, **kwargs):
        ack_calls.append(payload)

    app_module._handle_jargon_command(ack=ack, command=command, client=client, logger=logging.getLogger(__name__))
    return ack_calls, client.calls


def test_slash_command_opens_charge_modal(monkeypatch, workspace_id):
    ack_calls, calls = _run(_command(), monkeypatch)

    assert ack_calls == [None]
    name, kwargs = calls[0]
    assert name == "views_open"
    assert kwargs["trigger_id"] == "trigger-123"
    view = kwargs["view"]
    assert view["callback_id"] == "charge_modal"
    metadata = json.loads(view["private_metadata"])
    assert metadata == {"workspace_id": workspace_id, "channel_id": "C1", "charging_user_id": "U1"}
    jargon = next(block for block in view["blocks"] if block.get("block_id") == "jargon_block")
    assert [option["text"]["text"] for option in jargon["element"]["options"]] == [
        "bandwidth ($1.00)",
        "synergy ($5.00)",
        "Add a new term...",
    ]


def test_slash_command_new_opens_add_term_modal(monkeypatch, workspace_id):
    ack_calls, calls = _run(_command("new circle back"), monkeypatch)

    assert ack_calls == [None]
    view = calls[0][1]["view"]
    assert view["callback_id"] == "add_jargon_modal"
    term_block = next(block for block in view["blocks"] if block.get("block_id") == "term_block")
    assert term_block["element"]["initial_value"] == "circle back"


def test_slash_command_help_posts_ephemeral(monkeypatch, workspace_id):
    ack_calls, calls = _run(_command("help"), monkeypatch)

    assert ack_calls == [None]
    name, kwargs = calls[0]
    assert name == "chat_postEphemeral"
    assert kwargs["user"] == "U1"
    assert kwargs["text"] == "Jargon Jar help"


def test_unknown_subcommand_defaults_to_charge(monkeypatch, workspace_id):
    _, calls = _run(_command("whatever"), monkeypatch)

    assert calls[0][1]["view"]["callback_id"] == "charge_modal"


def test_unknown_subcommand_error_policy(monkeypatch, workspace_id):
    monkeypatch.setenv("UNKNOWN_SUBCOMMAND_POLICY", "error")
    config.get_settings.cache_clear()

    ack_calls, calls = _run(_command("whatever"), monkeypatch)

    assert ack_calls == [None]
    name, kwargs = calls[0]
    assert name == "chat_postEphemeral"
    assert kwargs["text"] == "Unknown subcommand: whatever"


def test_uninstalled_workspace_gets_ephemeral_ack(monkeypatch):
    ack_calls, calls = _run(_command(), monkeypatch)

    assert ack_calls == [{"response_type": "ephemeral", "text": NOT_INSTALLED_TEXT}]
    assert calls == []
