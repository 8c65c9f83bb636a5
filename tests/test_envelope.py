import time

from beacon_sdk.envelope import (
    Envelope,
    Item,
    PayloadRef,
    data_category_for_event,
    item_type_for_event,
)
from beacon_sdk.profiler import Profile
from beacon_sdk.serializer import EnvelopeSerializer
from beacon_sdk.tracing import Transaction

from tests.conftest import DSN, NOW


def test_item_type_and_category():
    assert item_type_for_event({}) == "event"
    assert item_type_for_event({"type": "error"}) == "event"
    assert item_type_for_event({"type": "transaction"}) == "transaction"
    assert item_type_for_event({"type": "check_in"}) == "check_in"
    assert item_type_for_event({"type": "metric"}) == "metric_buckets"

    assert data_category_for_event({}) == "error"
    assert data_category_for_event({"type": "transaction"}) == "transaction"
    assert data_category_for_event({"type": "check_in"}) == "monitor"
    assert data_category_for_event({"type": "metric"}) == "metric_bucket"


def test_envelope_headers():
    serializer = EnvelopeSerializer({"dsn": DSN})

    envelope = serializer.make_envelope({"event_id": "a" * 32, "message": "hi"})

    assert envelope.headers["event_id"] == "a" * 32
    assert envelope.headers["dsn"] == DSN
    assert envelope.headers["sdk"]["name"] == "beacon.python"
    assert "sent_at" in envelope.headers


def test_envelope_without_dsn_header():
    envelope = EnvelopeSerializer().make_envelope({"message": "hi"})

    assert "dsn" not in envelope.headers
    assert "event_id" not in envelope.headers


def test_error_event_round_trip():
    event = {"event_id": "a" * 32, "message": "hi", "timestamp": NOW}
    body = EnvelopeSerializer({"dsn": DSN}).serialize(event)

    envelope = Envelope.deserialize(body)

    (item,) = envelope.items
    assert item.type == "event"
    assert item.data_category == "error"
    assert envelope.get_event() == {
        "event_id": "a" * 32,
        "message": "hi",
        "timestamp": "2023-05-12T10:00:00.000000Z",
    }


def test_transaction_with_profile():
    transaction = Transaction(name="checkout", sampled=True)
    profile = Profile(transaction, frequency=1000)
    profile.start()
    deadline = time.time() + 5
    while len(profile._samples) < 2 and time.time() < deadline:
        time.sleep(0.01)
    profile.stop()

    event = {
        "type": "transaction",
        "event_id": "b" * 32,
        "transaction": "checkout",
        "start_timestamp": NOW,
        "profile": profile,
    }
    envelope = EnvelopeSerializer().make_envelope(event)

    transaction_item, profile_item = envelope.items
    assert transaction_item.type == "transaction"
    assert "profile" not in transaction_item.payload.json
    assert profile_item.type == "profile"
    assert profile_item.data_category == "profile"
    assert profile_item.payload.json["transactions"][0]["id"] == "b" * 32
    # the original event is left untouched
    assert event["profile"] is profile


def test_transaction_without_profile():
    envelope = EnvelopeSerializer().make_envelope(
        {"type": "transaction", "transaction": "checkout"}
    )

    (item,) = envelope.items
    assert item.type == "transaction"


def test_check_in_item():
    envelope = EnvelopeSerializer().make_envelope(
        {"type": "check_in", "check_in_id": "c" * 32, "status": "ok"}
    )

    (item,) = envelope.items
    assert item.type == "check_in"
    assert envelope.get_event()["check_in_id"] == "c" * 32


def test_metric_buckets_item():
    metric = {"name": "c:custom/clicks@none", "type": "c", "value": 1}
    envelope = EnvelopeSerializer().make_envelope({"type": "metric", "metric": metric})

    (item,) = envelope.items
    assert item.type == "metric_buckets"
    assert item.payload.json == [metric]
    assert envelope.get_event() is None


def test_serialize_format():
    envelope = Envelope(headers={"event_id": "abc"})
    envelope.add_item(Item(payload=PayloadRef(json={"a": 1}), type="event"))

    assert envelope.serialize() == (
        b'{"event_id":"abc"}\n'
        b'{"type":"event","content_type":"application/json","length":7}\n'
        b'{"a":1}\n'
    )


def test_deserialize_item_without_length():
    envelope = Envelope.deserialize(
        b'{"event_id":"abc"}\n'
        b'{"type":"attachment"}\n'
        b"helloworld\n"
    )

    (item,) = envelope.items
    assert item.get_bytes() == b"helloworld"
    assert item.data_category == "default"


def test_description():
    envelope = EnvelopeSerializer().make_envelope({"type": "check_in"})

    assert envelope.description == "envelope with 1 items (monitor)"
