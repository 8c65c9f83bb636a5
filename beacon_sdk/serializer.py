from abc import ABC, abstractmethod

from beacon_sdk.consts import SDK_INFO
from beacon_sdk.envelope import Envelope, item_type_for_event
from beacon_sdk.utils import format_timestamp, utc_now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Dict
    from typing import Optional

    from beacon_sdk._types import Event


class PayloadSerializer(ABC):
    """Turns an event into the request body sent to the collector."""

    @abstractmethod
    def serialize(self, event: "Event") -> bytes:
        pass


class EnvelopeSerializer(PayloadSerializer):
    """
    Wraps every event into an envelope. Transactions carry their profile as
    a second item, metrics are sent as a single `metric_buckets` item.
    """

    def __init__(self, options: "Optional[Dict[str, Any]]" = None) -> None:
        self.options = options or {}

    def _envelope_headers(self, event: "Event") -> "Dict[str, Any]":
        headers: "Dict[str, Any]" = {
            "sent_at": format_timestamp(utc_now()),
            "sdk": SDK_INFO,
        }
        if event.get("event_id") is not None:
            headers["event_id"] = event["event_id"]
        if self.options.get("dsn"):
            headers["dsn"] = str(self.options["dsn"])
        return headers

    def make_envelope(self, event: "Event") -> "Envelope":
        envelope = Envelope(headers=self._envelope_headers(event))
        item_type = item_type_for_event(event)

        if item_type == "transaction":
            event = dict(event)
            profile = event.pop("profile", None)
            envelope.add_transaction(event)
            if profile is not None:
                envelope.add_profile(profile.to_json(event))
        elif item_type == "check_in":
            envelope.add_checkin(event)
        elif item_type == "metric_buckets":
            envelope.add_metric_buckets([event["metric"]])
        else:
            envelope.add_event(event)

        return envelope

    def serialize(self, event: "Event") -> bytes:
        return self.make_envelope(event).serialize()
