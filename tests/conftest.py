from datetime import datetime, timedelta, timezone

import pytest

import beacon_sdk
import beacon_sdk.utils
from beacon_sdk.hub import Hub, Layer
from beacon_sdk.http import HttpClient, Response
from beacon_sdk.integrations import (  # noqa: F401
    _installed_integrations,
    _processed_integrations,
)
from beacon_sdk.scope import Scope
from beacon_sdk.serializer import EnvelopeSerializer
from beacon_sdk.transport import Result, ResultStatus, Transport


NOW = datetime(2023, 5, 12, 10, 0, 0, tzinfo=timezone.utc)

DSN = "https://public@collector.example.com/42"


@pytest.fixture(autouse=True)
def clean_hub():
    """
    Resets the main hub for every test to avoid leaking data between tests.
    """
    main = Hub.main
    main._stack[:] = [Layer(None, Scope())]
    main._last_event_id = None
    yield
    main._stack[:] = [Layer(None, Scope())]
    main._last_event_id = None


@pytest.fixture(autouse=True)
def internal_exceptions(request, monkeypatch):
    errors = []
    if "tests_internal_exceptions" in request.keywords:
        return

    def _capture_internal_exception(exc_info):
        errors.append(exc_info)

    @request.addfinalizer
    def _():
        # reraise the errors so that this just acts as a pass-through (that
        # happens to keep track of the errors which pass through it)
        for _ty, value, tb in errors:
            raise value.with_traceback(tb)

    monkeypatch.setattr(
        beacon_sdk.utils, "capture_internal_exception", _capture_internal_exception
    )

    return errors


@pytest.fixture
def sdk_logs(monkeypatch, caplog):
    """Lets SDK log records reach `caplog` even without a debug client."""
    monkeypatch.setattr(beacon_sdk.utils.logger, "filters", [])
    caplog.set_level("DEBUG", logger="beacon_sdk.errors")
    return caplog


@pytest.fixture
def reset_integrations():
    """
    Use with caution, this forgets about every integration that was set up
    before so the next client installs them again.
    """
    _processed_integrations.clear()
    _installed_integrations.clear()


@pytest.fixture
def beacon_init():
    def inner(*a, **kw):
        kw.setdefault("transport", TestTransport())
        client = beacon_sdk.Client(*a, **kw)
        Hub.current.bind_client(client)
        return client

    return inner


class TestTransport(Transport):
    __test__ = False

    def __init__(self):
        Transport.__init__(self)

    def send(self, event):
        return Result(ResultStatus.SUCCESS, event)


@pytest.fixture
def capture_events(monkeypatch):
    def inner():
        events = []
        test_client = Hub.current.client
        old_send = test_client.transport.send

        def append_event(event):
            events.append(event)
            return old_send(event)

        monkeypatch.setattr(test_client.transport, "send", append_event)

        return events

    return inner


@pytest.fixture
def capture_envelopes(monkeypatch):
    def inner():
        envelopes = []
        test_client = Hub.current.client
        old_send = test_client.transport.send
        serializer = EnvelopeSerializer(test_client.options)

        def append_envelope(event):
            envelopes.append(serializer.make_envelope(event))
            return old_send(event)

        monkeypatch.setattr(test_client.transport, "send", append_envelope)

        return envelopes

    return inner


class FakeHttpClient(HttpClient):
    """
    Records every request and answers with the queued responses, a queued
    exception is raised instead. Answers 200 once the queue is empty.
    """

    def __init__(self, *responses):
        self.requests = []
        self.responses = list(responses)

    def send_request(self, request, options):
        self.requests.append(request)
        if not self.responses:
            return Response(200)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def fake_http_client():
    return FakeHttpClient


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()
