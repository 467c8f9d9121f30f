from __future__ import annotations

import copy
import re
import threading
from datetime import UTC, datetime
from typing import Any

import pytest
from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError

from campus_reservations import dal, directory
from campus_reservations.models import Caller, ReservationRequest, Role

_deserializer = TypeDeserializer()

MEMBER = Caller(caller_id="member-m", role=Role.MEMBER)
OTHER_MEMBER = Caller(caller_id="member-o", role=Role.MEMBER)
ADJUDICATOR = Caller(caller_id="admin-a", role=Role.ADJUDICATOR)


def at(hour: int, minute: int = 0, day: int = 1) -> datetime:
    return datetime(2030, 1, day, hour, minute, tzinfo=UTC)


def make_request(start: datetime, end: datetime, **overrides: Any) -> ReservationRequest:
    base: dict[str, Any] = dict(
        resource_type="classroom",
        resource_id="101",
        start_time=start.isoformat(),
        end_time=end.isoformat(),
        purpose="study group",
    )
    base.update(overrides)
    return ReservationRequest(**base)


def _plain(attrs: dict[str, Any] | None) -> dict[str, Any]:
    return {k: _deserializer.deserialize(v) for k, v in (attrs or {}).items()}


class FakeDynamo:
    """In-process stand-in for the reservations table and its client.

    Understands just the expression shapes the data layer sends:
    ``attribute_(not_)exists(x)``, ``#name = :value``, ``SET #a = :a, ...`` and
    ``attr < :v`` / ``attr > :v`` bounds on queries.
    All operations are serialized by one lock, like a single partition.
    """

    def __init__(self) -> None:
        self.items: dict[str, dict[str, Any]] = {}
        self.lock = threading.Lock()
        self.transactions = 0
        self.queries: list[dict[str, Any]] = []

    @staticmethod
    def _check(item: dict[str, Any] | None, expr: str | None, names: dict, values: dict) -> bool:
        if not expr:
            return True
        m = re.fullmatch(r"attribute_(not_)?exists\((\w+)\)", expr)
        if m:
            exists = item is not None and m.group(2) in item
            return exists != bool(m.group(1))
        m = re.fullmatch(r"(#\w+) = (:\w+)", expr)
        if m:
            return item is not None and item.get(names[m.group(1)]) == values[m.group(2)]
        raise AssertionError(f"unsupported condition: {expr}")

    @staticmethod
    def _apply_set(item: dict[str, Any], expr: str, names: dict, values: dict) -> None:
        assert expr.startswith("SET "), expr
        for assign in expr[4:].split(","):
            name, val = (s.strip() for s in assign.split("="))
            item[names.get(name, name)] = values[val]

    # Table API

    def get_item(self, Key, ConsistentRead=False):  # noqa NOSONAR
        with self.lock:
            item = self.items.get(Key["reservation_id"])
            return {"Item": copy.deepcopy(item)} if item else {}

    def update_item(self, **kwargs):
        names = kwargs.get("ExpressionAttributeNames") or {}
        values = kwargs.get("ExpressionAttributeValues") or {}
        with self.lock:
            key = kwargs["Key"]["reservation_id"]
            item = self.items.get(key)
            if not self._check(item, kwargs.get("ConditionExpression"), names, values):
                raise ClientError(
                    {"Error": {"Code": "ConditionalCheckFailedException", "Message": "condition failed"}},
                    "UpdateItem",
                )
            assert item is not None
            self._apply_set(item, kwargs["UpdateExpression"], names, values)
            return {"Attributes": copy.deepcopy(item)}

    def query(self, **kwargs):
        values = kwargs["ExpressionAttributeValues"]
        key_expr, *bounds = kwargs["KeyConditionExpression"].split(" AND ")
        key_name = key_expr.split(" = ")[0]
        bounds += [kwargs["FilterExpression"]] if "FilterExpression" in kwargs else []

        def matches(it: dict[str, Any]) -> bool:
            if it.get(key_name) != values[":key"]:
                return False
            for bound in bounds:
                m = re.fullmatch(r"(\w+) ([<>]) (:\w+)", bound)
                assert m, f"unsupported bound: {bound}"
                attr, op, val = m.groups()
                if not (it[attr] < values[val] if op == "<" else it[attr] > values[val]):
                    return False
            return True

        with self.lock:
            self.queries.append(kwargs)
            items = [copy.deepcopy(it) for it in self.items.values() if matches(it)]
        return {"Items": sorted(items, key=lambda it: it["start_time"])}

    def scan(self, **kwargs):
        with self.lock:
            items = [copy.deepcopy(it) for it in self.items.values() if "requester_id" in it]
        return {"Items": items}

    # Client API

    def transact_write_items(self, TransactItems):  # noqa NOSONAR
        with self.lock:
            self.transactions += 1
            reasons = []
            for op in TransactItems:
                (kind, body), = op.items()
                key = _plain(body.get("Key") or body.get("Item"))["reservation_id"]
                ok = self._check(
                    self.items.get(key),
                    body.get("ConditionExpression"),
                    body.get("ExpressionAttributeNames") or {},
                    _plain(body.get("ExpressionAttributeValues")),
                )
                reasons.append({"Code": "None" if ok else "ConditionalCheckFailed"})
            if any(r["Code"] != "None" for r in reasons):
                raise ClientError(
                    {
                        "Error": {"Code": "TransactionCanceledException", "Message": "cancelled"},
                        "CancellationReasons": reasons,
                    },
                    "TransactWriteItems",
                )
            for op in TransactItems:
                (kind, body), = op.items()
                if kind == "Put":
                    item = _plain(body["Item"])
                    self.items[item["reservation_id"]] = item
                elif kind == "Delete":
                    self.items.pop(_plain(body["Key"])["reservation_id"], None)
                elif kind == "Update":
                    key = _plain(body["Key"])["reservation_id"]
                    self._apply_set(
                        self.items[key],
                        body["UpdateExpression"],
                        body.get("ExpressionAttributeNames") or {},
                        _plain(body.get("ExpressionAttributeValues")),
                    )
        return {}

    def reservations(self) -> list[dict[str, Any]]:
        return [it for it in self.items.values() if "requester_id" in it]


class FakeCatalog:
    def __init__(self, items: dict[str, dict[str, Any]]) -> None:
        self.items = items

    def get_item(self, Key):  # noqa NOSONAR
        item = self.items.get(Key["resource_key"])
        return {"Item": item} if item else {}


@pytest.fixture(autouse=True)
def fake_store(monkeypatch: pytest.MonkeyPatch) -> FakeDynamo:
    fake = FakeDynamo()
    monkeypatch.setattr(dal, "_table", fake)
    monkeypatch.setattr(dal, "_client", fake)
    return fake


@pytest.fixture(autouse=True)
def fake_catalog(monkeypatch: pytest.MonkeyPatch) -> FakeCatalog:
    catalog = FakeCatalog(
        {
            "classroom#101": {"resource_key": "classroom#101", "name": "Room 101", "location": "Main Hall", "capacity": 40},
            "classroom#102": {"resource_key": "classroom#102", "name": "Room 102", "location": "Main Hall", "capacity": 25},
            "facility#gym": {"resource_key": "facility#gym", "name": "Gymnasium", "location": "Sports Center"},
            "venue#cafe": {"resource_key": "venue#cafe", "name": "Campus Cafe", "capacity": 80},
        }
    )
    monkeypatch.setattr(directory, "_table", catalog)
    return catalog
