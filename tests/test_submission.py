"""Tests for charge and add-term modal submission handling."""

from decimal import Decimal
import json
import logging
from pathlib import Path
import sys

import pytest
from slack_sdk.errors import SlackApiError
import structlog
from structlog.contextvars import clear_contextvars
from structlog.testing import capture_logs

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import app as app_module  # noqa: E402
from jargon_jar import config  # noqa: E402
from jargon_jar.charges.modals import ModalMetadata, NEW_TERM_OPTION_VALUE  # noqa: E402
from jargon_jar.db import get_engine, get_session_factory, session_scope  # noqa: E402
from jargon_jar.models import Base, Charge, JargonTerm, User, Workspace  # noqa: E402


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    db_path = tmp_path / "charges.db"
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()

    engine = get_engine()
    Base.metadata.create_all(engine)

    yield

    Base.metadata.drop_all(engine)
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


@pytest.fixture
def logger():
    bolt_app = app_module._create_bolt_app(config.get_settings())
    return bolt_app.logger


@pytest.fixture
def seeded():
    with session_scope() as session:
        workspace = Workspace(slack_id="T1", name="Acme", bot_token="xoxb-1")
        session.add(workspace)
        session.flush()
        session.add(User(slack_id="UCHARGER", display_name="Alice", workspace_id=workspace.id))
        term = JargonTerm(term="synergy", default_cost=Decimal("5.00"), workspace_id=workspace.id)
        session.add(term)
        session.flush()
        return {"workspace_id": workspace.id, "term_id": term.id}


class DummyResponse(dict):
    """Minimal Slack response stub for error handling tests."""

    def __init__(self, error: str = "user_not_found", status_code: int = 404) -> None:
        super().__init__({"ok": False, "error": error})
        self.status_code = status_code

    @property
    def data(self) -> dict[str, str]:
        return dict(self)


class DummySlackWebClient:
    def __init__(self, *, fail_users_info: bool = False):
        self.calls = []
        self.fail_users_info = fail_users_info

    def users_info(self, **kwargs):
        self.calls.append(("users_info", kwargs))
        if self.fail_users_info:
            raise SlackApiError("users.info failed", DummyResponse())
        return {
            "ok": True,
            "user": {"id": kwargs["user"], "name": "bob", "profile": {"display_name": "Bob"}},
        }

    def chat_postMessage(self, **kwargs):
        self.calls.append(("chat_postMessage", kwargs))
        return {"ok": True, "channel": kwargs["channel"], "ts": "1700000000.000001"}

    def chat_postEphemeral(self, **kwargs):
        self.calls.append(("chat_postEphemeral", kwargs))
        return {"ok": True}

    def views_update(self, **kwargs):
        self.calls.append(("views_update", kwargs))
        return {"ok": True}


def run_async_sync(func, /, *args, **kwargs):
    kwargs.pop("trace_id", None)
    return func(*args, **kwargs)


def _collector():
    calls = []

    def ack(payload=None, **kwargs):
        calls.append(payload)

    return ack, calls


def _charge_body(workspace_id, *, user="UBOB", term=None, amount=None, new_term=None, note=None):
    values = {}
    if user is not None:
        values["user_block"] = {"user_select": {"type": "users_select", "selected_user": user}}
    if term is not None:
        values["jargon_block"] = {"jargon_select": {"type": "static_select", "selected_option": {"value": str(term)}}}
    values["amount_block"] = {"amount_input": {"type": "plain_text_input", "value": amount}}
    if new_term is not None:
        values["new_term_block"] = {"new_term_input": {"type": "plain_text_input", "value": new_term}}
    values["description_block"] = {"description_input": {"type": "plain_text_input", "value": note}}

    metadata = ModalMetadata(workspace_id=workspace_id, channel_id="CGENERAL", charging_user_id="UCHARGER")
    return {
        "type": "view_submission",
        "team": {"id": "T1"},
        "user": {"id": "UCHARGER"},
        "view": {
            "id": "V1",
            "callback_id": "charge_modal",
            "private_metadata": metadata.dumps(),
            "state": {"values": values},
        },
    }


def _charges():
    with get_engine().begin() as connection:
        return connection.execute(Charge.__table__.select()).fetchall()


def test_charge_with_default_cost_is_recorded_and_announced(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()
    client = DummySlackWebClient()

    body = _charge_body(seeded["workspace_id"], term=seeded["term_id"], note="In standup")
    with capture_logs(processors=[structlog.contextvars.merge_contextvars]) as logs:
        app_module._handle_charge_submission(ack=ack, body=body, client=client, logger=logger)

    assert ack_calls == [None]
    rows = _charges()
    assert len(rows) == 1
    assert Decimal(str(rows[0].amount)) == Decimal("5.00")
    assert rows[0].channel_id == "CGENERAL"
    assert rows[0].message_text == "In standup"
    assert not rows[0].is_automatic

    users_info = [call for call in client.calls if call[0] == "users_info"]
    assert users_info == [("users_info", {"user": "UBOB"})]

    post = next(kwargs for name, kwargs in client.calls if name == "chat_postMessage")
    assert post["channel"] == "CGENERAL"
    assert post["text"].startswith(":dollar: <@UCHARGER> just charged <@UBOB> $5.00 for using \"synergy\"!")

    recorded = next(entry for entry in logs if entry["event"] == "charge_recorded")
    assert recorded["trace_id"]
    assert recorded["amount"] == "5.00"
    clear_contextvars()


def test_explicit_amount_overrides_default(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], term=seeded["term_id"], amount="$12.5")
    app_module._handle_charge_submission(ack=ack, body=body, client=DummySlackWebClient(), logger=logger)

    assert ack_calls == [None]
    assert Decimal(str(_charges()[0].amount)) == Decimal("12.50")


def test_missing_user_returns_block_error_and_writes_nothing(seeded, logger):
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], user=None, term=seeded["term_id"])
    app_module._handle_charge_submission(ack=ack, body=body, client=object(), logger=logger)

    assert ack_calls[0]["response_action"] == "errors"
    assert "user_block" in ack_calls[0]["errors"]
    assert _charges() == []


def test_missing_term_returns_block_error(seeded, logger):
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"])
    app_module._handle_charge_submission(ack=ack, body=body, client=object(), logger=logger)

    assert "jargon_block" in ack_calls[0]["errors"]
    assert _charges() == []


@pytest.mark.parametrize("amount", ["abc", "-3", "0"])
def test_invalid_amount_returns_block_error(seeded, logger, amount):
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], term=seeded["term_id"], amount=amount)
    app_module._handle_charge_submission(ack=ack, body=body, client=object(), logger=logger)

    assert "amount_block" in ack_calls[0]["errors"]
    assert _charges() == []


def test_new_term_requires_amount(seeded, logger):
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], term=NEW_TERM_OPTION_VALUE, new_term="circle back")
    app_module._handle_charge_submission(ack=ack, body=body, client=object(), logger=logger)

    assert "amount_block" in ack_calls[0]["errors"]


def test_new_term_requires_name(seeded, logger):
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], term=NEW_TERM_OPTION_VALUE, amount="2")
    app_module._handle_charge_submission(ack=ack, body=body, client=object(), logger=logger)

    assert "jargon_block" in ack_calls[0]["errors"]


def test_new_term_creates_term_and_single_charge(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], term=NEW_TERM_OPTION_VALUE, new_term="circle back", amount="3")
    app_module._handle_charge_submission(ack=ack, body=body, client=DummySlackWebClient(), logger=logger)

    assert ack_calls == [None]
    with get_engine().begin() as connection:
        terms = connection.execute(
            JargonTerm.__table__.select().where(JargonTerm.__table__.c.term == "circle back")
        ).fetchall()
    assert len(terms) == 1
    assert Decimal(str(terms[0].default_cost)) == Decimal("3.00")
    assert terms[0].workspace_id == seeded["workspace_id"]
    rows = _charges()
    assert len(rows) == 1
    assert rows[0].jargon_term_id == terms[0].id


def test_new_term_matching_existing_name_is_reused(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, _ = _collector()

    body = _charge_body(seeded["workspace_id"], term=NEW_TERM_OPTION_VALUE, new_term="Synergy", amount="1")
    app_module._handle_charge_submission(ack=ack, body=body, client=DummySlackWebClient(), logger=logger)

    with get_engine().begin() as connection:
        count = len(connection.execute(JargonTerm.__table__.select()).fetchall())
    assert count == 1
    assert _charges()[0].jargon_term_id == seeded["term_id"]


def test_duplicate_submissions_create_two_charges(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    client = DummySlackWebClient()

    for _ in range(2):
        ack, ack_calls = _collector()
        body = _charge_body(seeded["workspace_id"], term=seeded["term_id"])
        app_module._handle_charge_submission(ack=ack, body=body, client=client, logger=logger)
        assert ack_calls == [None]

    assert len(_charges()) == 2
    with get_engine().begin() as connection:
        users = connection.execute(User.__table__.select()).fetchall()
    assert sorted(user.slack_id for user in users) == ["UBOB", "UCHARGER"]


def test_user_resolution_failure_writes_nothing(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()
    client = DummySlackWebClient(fail_users_info=True)

    body = _charge_body(seeded["workspace_id"], term=NEW_TERM_OPTION_VALUE, new_term="circle back", amount="3")
    app_module._handle_charge_submission(ack=ack, body=body, client=client, logger=logger)

    assert ack_calls[0]["response_action"] == "errors"
    assert "user_block" in ack_calls[0]["errors"]
    assert _charges() == []
    with get_engine().begin() as connection:
        assert len(connection.execute(JargonTerm.__table__.select()).fetchall()) == 1

    ephemeral = next(kwargs for name, kwargs in client.calls if name == "chat_postEphemeral")
    assert ephemeral["user"] == "UCHARGER"
    assert ephemeral["channel"] == "CGENERAL"


def test_unknown_term_id_returns_block_error(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()

    body = _charge_body(seeded["workspace_id"], term=9999)
    app_module._handle_charge_submission(ack=ack, body=body, client=DummySlackWebClient(), logger=logger)

    assert "jargon_block" in ack_calls[0]["errors"]
    assert _charges() == []


def test_invalid_metadata_returns_error(seeded, logger):
    ack, ack_calls = _collector()
    body = _charge_body(seeded["workspace_id"], term=seeded["term_id"])
    body["view"]["private_metadata"] = "not-json"

    app_module._handle_charge_submission(ack=ack, body=body, client=object(), logger=logger)

    assert ack_calls[0]["errors"]["user_block"] == "Invalid modal metadata."


def test_confirmation_failure_keeps_charge(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()

    class FailingClient(DummySlackWebClient):
        def chat_postMessage(self, **kwargs):
            raise SlackApiError("not_in_channel", DummyResponse("not_in_channel", 200))

    body = _charge_body(seeded["workspace_id"], term=seeded["term_id"])
    with capture_logs() as logs:
        app_module._handle_charge_submission(ack=ack, body=body, client=FailingClient(), logger=logger)

    assert ack_calls == [None]
    assert len(_charges()) == 1
    failure = next(entry for entry in logs if entry["event"] == "webhook_failed")
    assert failure["operation"] == "post_charge_confirmation"
    assert failure["error"] == "not_in_channel"


def _add_term_body(workspace_id, *, term="circle back", cost="4", description=None, parent_view_id=None):
    metadata = ModalMetadata(
        workspace_id=workspace_id,
        channel_id="CGENERAL",
        charging_user_id="UCHARGER",
        parent_view_id=parent_view_id,
    )
    return {
        "type": "view_submission",
        "team": {"id": "T1"},
        "user": {"id": "UCHARGER"},
        "view": {
            "id": "V2",
            "callback_id": "add_jargon_modal",
            "private_metadata": metadata.dumps(),
            "state": {
                "values": {
                    "term_block": {"term_input": {"value": term}},
                    "term_description_block": {"term_description_input": {"value": description}},
                    "term_cost_block": {"term_cost_input": {"value": cost}},
                }
            },
        },
    }


def test_add_term_creates_term_and_announces(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, ack_calls = _collector()
    client = DummySlackWebClient()

    body = _add_term_body(seeded["workspace_id"], description="Talk later")
    app_module._handle_add_term_submission(ack=ack, body=body, client=client, logger=logger)

    assert ack_calls == [None]
    with session_scope() as session:
        term = session.query(JargonTerm).filter_by(term="circle back").one()
        assert term.default_cost == Decimal("4.00")
        assert term.description == "Talk later"
        assert term.creator.slack_id == "UCHARGER"

    post = next(kwargs for name, kwargs in client.calls if name == "chat_postMessage")
    assert "circle back" in post["blocks"][0]["text"]["text"]
    assert not any(name == "views_update" for name, _ in client.calls)


def test_add_term_from_charge_modal_updates_parent(seeded, logger, monkeypatch):
    monkeypatch.setattr(app_module, "run_async", run_async_sync)
    ack, _ = _collector()
    client = DummySlackWebClient()

    body = _add_term_body(seeded["workspace_id"], parent_view_id="VPARENT")
    app_module._handle_add_term_submission(ack=ack, body=body, client=client, logger=logger)

    update = next(kwargs for name, kwargs in client.calls if name == "views_update")
    assert update["view_id"] == "VPARENT"
    view = update["view"]
    assert view["callback_id"] == "charge_modal"
    jargon = next(block for block in view["blocks"] if block.get("block_id") == "jargon_block")
    assert jargon["element"]["initial_option"]["text"]["text"] == "circle back ($4.00)"
    assert json.loads(view["private_metadata"]).get("parent_view_id") is None


def test_add_term_duplicate_returns_error(seeded, logger):
    ack, ack_calls = _collector()

    body = _add_term_body(seeded["workspace_id"], term="SYNERGY")
    app_module._handle_add_term_submission(ack=ack, body=body, client=DummySlackWebClient(), logger=logger)

    assert ack_calls[0]["errors"]["term_block"] == "That jargon term already exists."


def test_add_term_requires_cost(seeded, logger):
    ack, ack_calls = _collector()

    body = _add_term_body(seeded["workspace_id"], cost=None)
    app_module._handle_add_term_submission(ack=ack, body=body, client=object(), logger=logger)

    assert "term_cost_block" in ack_calls[0]["errors"]


def test_bolt_logger_is_standard_logger(logger):
    assert isinstance(logger, logging.Logger)
