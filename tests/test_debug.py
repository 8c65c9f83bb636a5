import logging

from beacon_sdk import Client
from beacon_sdk.utils import logger

from tests.conftest import TestTransport


def test_logs_hidden_without_debug(beacon_init, caplog):
    beacon_init()

    with caplog.at_level(logging.DEBUG, logger="beacon_sdk.errors"):
        logger.warning("quiet")

    assert "quiet" not in caplog.text


def test_logs_shown_with_debug(beacon_init, caplog):
    beacon_init(debug=True)

    with caplog.at_level(logging.DEBUG, logger="beacon_sdk.errors"):
        logger.warning("loud")

    assert "loud" in caplog.text


def test_logs_shown_while_debug_client_initializes(caplog):
    with caplog.at_level(logging.DEBUG, logger="beacon_sdk.errors"):
        Client(transport=TestTransport(), debug=True)

    assert "Setting up integrations" in caplog.text


def test_debug_env(monkeypatch, beacon_init, caplog):
    monkeypatch.setenv("BEACON_DEBUG", "yes")
    beacon_init()

    with caplog.at_level(logging.DEBUG, logger="beacon_sdk.errors"):
        logger.info("from env")

    assert "from env" in caplog.text
