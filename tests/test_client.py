import sys
from unittest import mock

import pytest

import beacon_sdk
from beacon_sdk import Client, Hub
from beacon_sdk.client import get_options
from beacon_sdk.consts import SDK_INFO
from beacon_sdk.integrations import DidNotEnable, Integration
from beacon_sdk.transport import Result, ResultStatus, Transport

from tests.conftest import DSN, TestTransport


class RaisingTransport(Transport):
    def send(self, event):
        raise RuntimeError("transport blew up")


class SkippingTransport(Transport):
    def send(self, event):
        return Result(ResultStatus.SKIPPED)


def test_unknown_option_raises():
    with pytest.raises(TypeError):
        Client(not_an_option=True)


def test_dsn_as_positional_argument():
    assert Client(DSN).dsn == DSN
    assert get_options(DSN)["dsn"] == DSN
    assert get_options(dsn=DSN)["dsn"] == DSN


@pytest.mark.parametrize(
    "env,option,expected",
    [
        ("BEACON_DSN", "dsn", DSN),
        ("BEACON_RELEASE", "release", "app@2.0"),
        ("BEACON_ENVIRONMENT", "environment", "staging"),
    ],
)
def test_env_fallbacks(monkeypatch, env, option, expected):
    monkeypatch.setenv(env, expected)

    assert get_options()[option] == expected


def test_explicit_option_wins_over_env(monkeypatch):
    monkeypatch.setenv("BEACON_RELEASE", "from-env")

    assert get_options(release="explicit")["release"] == "explicit"


def test_environment_defaults_to_production(monkeypatch):
    monkeypatch.delenv("BEACON_ENVIRONMENT", raising=False)

    assert get_options()["environment"] == "production"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("true", True),
        ("0", False),
        ("http://localhost:1234/stream", "http://localhost:1234/stream"),
    ],
)
def test_spotlight_env(monkeypatch, value, expected):
    monkeypatch.setenv("BEACON_SPOTLIGHT", value)

    assert get_options()["spotlight"] == expected


def test_debug_env(monkeypatch):
    monkeypatch.setenv("BEACON_DEBUG", "1")

    assert get_options()["debug"] is True


def test_capture_event_fills_defaults(beacon_init, capture_events):
    beacon_init(release="app@1.0", environment="staging", server_name="web-1", dist="7")
    events = capture_events()

    event_id = beacon_sdk.capture_event({"message": "hi"})

    (event,) = events
    assert event["event_id"] == event_id
    assert event["release"] == "app@1.0"
    assert event["environment"] == "staging"
    assert event["server_name"] == "web-1"
    assert event["dist"] == "7"
    assert event["platform"] == "python"
    assert event["sdk"]["name"] == SDK_INFO["name"]
    assert event["timestamp"] is not None


def test_event_values_are_not_overwritten(beacon_init, capture_events):
    beacon_init(release="app@1.0")
    events = capture_events()

    beacon_sdk.capture_event({"message": "hi", "release": "other", "event_id": "f" * 32})

    assert events[0]["release"] == "other"
    assert events[0]["event_id"] == "f" * 32


def test_before_send_can_modify_and_drop(beacon_init, capture_events):
    def before_send(event, hint):
        if event.get("message") == "drop me":
            return None
        event["extra"] = {"seen": True}
        return event

    beacon_init(before_send=before_send)
    events = capture_events()

    assert beacon_sdk.capture_message("keep me") is not None
    assert beacon_sdk.capture_message("drop me") is None

    (event,) = events
    assert event["extra"] == {"seen": True}


def test_before_send_gets_hint(beacon_init):
    hints = []

    def before_send(event, hint):
        hints.append(hint)
        return event

    beacon_init(before_send=before_send)
    error = ValueError("oops")
    beacon_sdk.capture_exception(error)

    (hint,) = hints
    assert hint["exc_info"][1] is error


def test_before_send_skips_transactions(beacon_init, capture_events):
    before_send = mock.Mock(return_value=None)
    beacon_init(before_send=before_send, traces_sample_rate=1.0)
    events = capture_events()

    with beacon_sdk.start_transaction(name="checkout"):
        pass

    before_send.assert_not_called()
    assert events[0]["type"] == "transaction"


@pytest.mark.tests_internal_exceptions
def test_failing_before_send_drops_event(beacon_init, capture_events):
    def before_send(event, hint):
        raise RuntimeError("broken hook")

    beacon_init(before_send=before_send)
    events = capture_events()

    assert beacon_sdk.capture_message("hi") is None
    assert events == []


def test_error_sample_rate(beacon_init, capture_events):
    beacon_init(sample_rate=0.5)
    events = capture_events()

    with mock.patch("beacon_sdk.client.random.random", return_value=0.9):
        assert beacon_sdk.capture_message("dropped") is None
    with mock.patch("beacon_sdk.client.random.random", return_value=0.1):
        assert beacon_sdk.capture_message("kept") is not None

    assert [e["message"] for e in events] == ["kept"]


def test_error_sample_rate_does_not_apply_to_check_ins(beacon_init, capture_events):
    beacon_init(sample_rate=0.0)
    events = capture_events()

    beacon_sdk.capture_checkin(monitor_slug="nightly", status="ok")

    assert len(events) == 1


@pytest.mark.tests_internal_exceptions
def test_transport_exception_is_swallowed(beacon_init):
    beacon_init(transport=RaisingTransport())

    assert beacon_sdk.capture_message("hi") is None
    assert Hub.current.last_event_id() is None


def test_result_without_event_returns_none(beacon_init):
    beacon_init(transport=SkippingTransport())

    assert beacon_sdk.capture_message("hi") is None


def test_function_transport(beacon_init):
    sent = []
    beacon_init(transport=sent.append)

    event_id = beacon_sdk.capture_message("hi")

    (event,) = sent
    assert event["event_id"] == event_id


def test_capture_exception_chain(beacon_init, capture_events):
    beacon_init()
    events = capture_events()

    try:
        try:
            raise KeyError("inner")
        except KeyError as e:
            raise ValueError("outer") from e
    except ValueError:
        beacon_sdk.capture_exception()

    (event,) = events
    assert event["level"] == "error"
    assert [e["type"] for e in event["exception"]["values"]] == ["KeyError", "ValueError"]


def test_capture_exception_without_exception(beacon_init, capture_events):
    beacon_init()
    events = capture_events()

    assert beacon_sdk.capture_exception() is None
    assert events == []


def test_capture_last_error(beacon_init, capture_events, monkeypatch):
    beacon_init()
    events = capture_events()

    assert beacon_sdk.capture_last_error() is None

    monkeypatch.setattr(sys, "last_value", RuntimeError("unhandled"), raising=False)
    event_id = beacon_sdk.capture_last_error()

    (event,) = events
    assert event["event_id"] == event_id
    assert event["level"] == "fatal"
    (exception,) = event["exception"]["values"]
    assert exception["type"] == "RuntimeError"
    assert exception["mechanism"] == {"type": "excepthook", "handled": False}


def test_close_disables_client():
    transport = TestTransport()
    client = Client(transport=transport)

    with mock.patch.object(transport, "close", wraps=transport.close) as close:
        client.close()

    close.assert_called_once()
    assert client.transport is None
    assert not client.is_active()
    assert client.capture_event({"message": "hi"}) is None


def test_client_as_context_manager():
    with Client(transport=TestTransport()) as client:
        assert client.is_active()
    assert not client.is_active()


def test_flush_uses_shutdown_timeout():
    transport = TestTransport()
    client = Client(transport=transport, shutdown_timeout=7)

    with mock.patch.object(transport, "flush") as flush:
        client.flush()

    flush.assert_called_once_with(timeout=7, callback=None)


class ExampleIntegration(Integration):
    identifier = "example"
    setup_calls = 0

    @staticmethod
    def setup_once():
        ExampleIntegration.setup_calls += 1


class BrokenIntegration(Integration):
    identifier = "broken"

    @staticmethod
    def setup_once():
        raise DidNotEnable("missing dependency")


def test_integrations_set_up_once(reset_integrations, capture_events):
    ExampleIntegration.setup_calls = 0
    first = Client(transport=TestTransport(), integrations=[ExampleIntegration()])
    second = Client(transport=TestTransport(), integrations=[ExampleIntegration()])

    assert ExampleIntegration.setup_calls == 1
    assert isinstance(first.get_integration("example"), ExampleIntegration)
    assert second.get_integration(ExampleIntegration) is not None
    assert first.get_integration("other") is None

    Hub.current.bind_client(first)
    events = capture_events()
    beacon_sdk.capture_message("hi")
    assert events[0]["sdk"]["integrations"] == ["example"]
    assert Hub.current.get_integration("example") is not None


def test_integration_that_does_not_enable(reset_integrations):
    with pytest.raises(DidNotEnable):
        Client(transport=TestTransport(), integrations=[BrokenIntegration()])


def test_integration_without_identifier(reset_integrations):
    class Nameless(Integration):
        @staticmethod
        def setup_once():
            pass

    with pytest.raises(ValueError):
        Client(transport=TestTransport(), integrations=[Nameless()])
