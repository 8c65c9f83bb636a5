import io
import json

from beacon_sdk.utils import json_dumps

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Optional
    from typing import Union
    from typing import Dict
    from typing import List
    from typing import Iterator

    from beacon_sdk._types import Event, EventDataCategory


_ITEM_TYPE_FOR_EVENT_TYPE = {
    "transaction": "transaction",
    "check_in": "check_in",
    "metric": "metric_buckets",
}

_DATA_CATEGORY_FOR_ITEM_TYPE = {
    "event": "error",
    "transaction": "transaction",
    "check_in": "monitor",
    "metric_buckets": "metric_bucket",
}


def parse_json(data: "Union[bytes, str]") -> "Any":
    # on some python 3 versions this needs to be bytes
    if isinstance(data, bytes):
        data = data.decode("utf-8", "replace")
    return json.loads(data)


def item_type_for_event(event: "Event") -> str:
    """The envelope item type carrying an event of the given type."""
    return _ITEM_TYPE_FOR_EVENT_TYPE.get(event.get("type") or "event", "event")


def data_category_for_event(event: "Event") -> "EventDataCategory":
    """The rate limit category an event is counted against."""
    return _DATA_CATEGORY_FOR_ITEM_TYPE[item_type_for_event(event)]  # type: ignore


class Envelope:
    """
    Represents an envelope: a header line followed by any number of items.
    Each envelope carries at most one event-like item plus items belonging
    to it, such as the profile of a transaction.
    """

    def __init__(
        self,
        headers: "Optional[Dict[str, Any]]" = None,
        items: "Optional[List[Item]]" = None,
    ) -> None:
        if headers is not None:
            headers = dict(headers)
        self.headers = headers or {}
        if items is None:
            items = []
        else:
            items = list(items)
        self.items = items

    @property
    def description(self) -> str:
        return "envelope with %s items (%s)" % (
            len(self.items),
            ", ".join(x.data_category for x in self.items),
        )

    def add_event(self, event: "Event") -> None:
        self.add_item(Item(payload=PayloadRef(json=event), type="event"))

    def add_transaction(self, transaction: "Event") -> None:
        self.add_item(Item(payload=PayloadRef(json=transaction), type="transaction"))

    def add_profile(self, profile: "Any") -> None:
        self.add_item(Item(payload=PayloadRef(json=profile), type="profile"))

    def add_checkin(self, checkin: "Any") -> None:
        self.add_item(Item(payload=PayloadRef(json=checkin), type="check_in"))

    def add_metric_buckets(self, buckets: "List[Any]") -> None:
        self.add_item(Item(payload=PayloadRef(json=buckets), type="metric_buckets"))

    def add_item(self, item: "Item") -> None:
        self.items.append(item)

    def get_event(self) -> "Optional[Event]":
        for item in self.items:
            event = item.get_event()
            if event is not None:
                return event
        return None

    def __iter__(self) -> "Iterator[Item]":
        return iter(self.items)

    def serialize_into(self, f: "Any") -> None:
        f.write(json_dumps(self.headers))
        f.write(b"\n")
        for item in self.items:
            item.serialize_into(f)

    def serialize(self) -> bytes:
        out = io.BytesIO()
        self.serialize_into(out)
        return out.getvalue()

    @classmethod
    def deserialize_from(cls, f: "Any") -> "Envelope":
        headers = parse_json(f.readline())
        items = []
        while 1:
            item = Item.deserialize_from(f)
            if item is None:
                break
            items.append(item)
        return cls(headers=headers, items=items)

    @classmethod
    def deserialize(cls, bytes: bytes) -> "Envelope":
        return cls.deserialize_from(io.BytesIO(bytes))

    def __repr__(self) -> str:
        return "<Envelope headers=%r items=%r>" % (self.headers, self.items)


class PayloadRef:
    def __init__(
        self,
        bytes: "Optional[bytes]" = None,
        json: "Optional[Any]" = None,
    ) -> None:
        self.json = json
        self.bytes = bytes

    def get_bytes(self) -> bytes:
        if self.bytes is None and self.json is not None:
            self.bytes = json_dumps(self.json)
        return self.bytes or b""

    @property
    def inferred_content_type(self) -> str:
        if self.json is not None:
            return "application/json"
        return "application/octet-stream"

    def __repr__(self) -> str:
        return "<Payload %r>" % (self.inferred_content_type,)


class Item:
    def __init__(
        self,
        payload: "Union[bytes, str, PayloadRef]",
        headers: "Optional[Dict[str, Any]]" = None,
        type: "Optional[str]" = None,
        content_type: "Optional[str]" = None,
    ) -> None:
        headers = dict(headers) if headers is not None else {}
        self.headers = headers
        if isinstance(payload, bytes):
            payload = PayloadRef(bytes=payload)
        elif isinstance(payload, str):
            payload = PayloadRef(bytes=payload.encode("utf-8"))

        if type is not None:
            headers["type"] = type
        if content_type is not None:
            headers["content_type"] = content_type
        elif "content_type" not in headers:
            headers["content_type"] = payload.inferred_content_type

        self.payload = payload

    def __repr__(self) -> str:
        return "<Item headers=%r payload=%r data_category=%r>" % (
            self.headers,
            self.payload,
            self.data_category,
        )

    @property
    def type(self) -> "Optional[str]":
        return self.headers.get("type")

    @property
    def data_category(self) -> str:
        ty = self.headers.get("type")
        if ty == "profile":
            return "profile"
        return _DATA_CATEGORY_FOR_ITEM_TYPE.get(ty or "", "default")

    def get_bytes(self) -> bytes:
        return self.payload.get_bytes()

    def get_event(self) -> "Optional[Event]":
        """
        Returns the event-like payload if there is one.
        """
        if self.type in ("event", "transaction", "check_in"):
            return self.payload.json
        return None

    def serialize_into(self, f: "Any") -> None:
        headers = dict(self.headers)
        bytes = self.get_bytes()
        headers["length"] = len(bytes)
        f.write(json_dumps(headers))
        f.write(b"\n")
        f.write(bytes)
        f.write(b"\n")

    def serialize(self) -> bytes:
        out = io.BytesIO()
        self.serialize_into(out)
        return out.getvalue()

    @classmethod
    def deserialize_from(cls, f: "Any") -> "Optional[Item]":
        line = f.readline().rstrip()
        if not line:
            return None
        headers = parse_json(line)
        length = headers.get("length")
        if length is not None:
            payload = f.read(length)
            f.readline()
        else:
            # if no length was specified we need to read up to the end of line
            # and remove it (if it is present, i.e. not the very last char in an eof terminated envelope)
            payload = f.readline().rstrip(b"\n")
        if headers.get("content_type") == "application/json":
            rv = cls(headers=headers, payload=PayloadRef(json=parse_json(payload)))
        else:
            rv = cls(headers=headers, payload=payload)
        return rv

    @classmethod
    def deserialize(cls, bytes: bytes) -> "Optional[Item]":
        return cls.deserialize_from(io.BytesIO(bytes))
