"""Tests for Slack request signature verification."""

from pathlib import Path
import sys
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jargon_jar import security  # noqa: E402

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = "token=xyz&team_id=T1&command=%2Fjargon&text=&trigger_id=13345224609.738474920.8088930838d88f008e0"
NOW = 1_700_000_000


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch):
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: NOW))


def test_compute_signature_matches_slack_format():
    signature = security.compute_signature(SECRET, "1531420618", "hello")

    assert signature.startswith("v0=")
    assert len(signature) == 3 + 64


def test_valid_signature_within_window():
    timestamp = str(NOW - 299)
    signature = security.compute_signature(SECRET, timestamp, BODY)

    assert security.is_valid_slack_request(
        signing_secret=SECRET, timestamp=timestamp, body=BODY, signature=signature
    )


@pytest.mark.parametrize("offset", [301, -301])
def test_timestamp_outside_window_rejected(offset):
    timestamp = str(NOW - offset)
    signature = security.compute_signature(SECRET, timestamp, BODY)

    assert not security.is_valid_slack_request(
        signing_secret=SECRET, timestamp=timestamp, body=BODY, signature=signature
    )


def test_single_byte_body_change_rejected():
    timestamp = str(NOW)
    signature = security.compute_signature(SECRET, timestamp, BODY)
    tampered = BODY.replace("T1", "T2")

    assert not security.is_valid_slack_request(
        signing_secret=SECRET, timestamp=timestamp, body=tampered, signature=signature
    )


def test_single_character_signature_change_rejected():
    timestamp = str(NOW)
    signature = security.compute_signature(SECRET, timestamp, BODY)
    last = "0" if signature[-1] != "0" else "1"

    assert not security.is_valid_slack_request(
        signing_secret=SECRET, timestamp=timestamp, body=BODY, signature=signature[:-1] + last
    )


@pytest.mark.parametrize(
    "timestamp,signature",
    [
        ("", "v0=abc"),
        (str(NOW), ""),
        ("not-a-number", "v0=abc"),
        (str(NOW), "v0=é"),
    ],
)
def test_malformed_headers_return_false(timestamp, signature):
    assert (
        security.is_valid_slack_request(
            signing_secret=SECRET, timestamp=timestamp, body=BODY, signature=signature
        )
        is False
    )
