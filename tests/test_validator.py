from __future__ import annotations

from datetime import UTC, datetime

import pytest
from conftest import MEMBER, at, make_request

from campus_reservations.errors import NotFoundError, ValidationError
from campus_reservations.models import ReservationRequest, ResourceType
from campus_reservations.validator import validate_request


def test_valid_request_is_normalized():
    candidate, resource = validate_request(
        make_request(at(9), at(10), resource_type=" Classroom ", purpose="  study group "), MEMBER
    )
    assert candidate.resource_type is ResourceType.CLASSROOM
    assert candidate.requester_id == MEMBER.caller_id
    assert candidate.purpose == "study group"
    assert candidate.start_time == at(9)
    assert resource.name == "Room 101"
    assert resource.capacity == 40


def test_naive_timestamps_are_treated_as_utc():
    candidate, _ = validate_request(
        make_request(datetime(2030, 1, 1, 9), datetime(2030, 1, 1, 10)), MEMBER
    )
    assert candidate.start_time.tzinfo is not None
    assert candidate.start_time == datetime(2030, 1, 1, 9, tzinfo=UTC)


def test_offset_timestamps_are_converted_to_utc():
    candidate, _ = validate_request(
        make_request(at(9), at(10), start_time="2030-01-01T11:00:00+02:00"), MEMBER
    )
    assert candidate.start_time == at(9)


def test_every_failing_field_is_reported():
    with pytest.raises(ValidationError) as info:
        validate_request(
            ReservationRequest(resource_type="spaceship", start_time="not a time", purpose="   "), MEMBER
        )
    fields = {f.field for f in info.value.fields}
    assert fields == {"resource_type", "resource_id", "purpose", "start_time", "end_time"}
    body = info.value.to_dict()
    assert body["kind"] == "ValidationError"
    assert len(body["fields"]) == len(fields)


def test_empty_request_reports_everything_missing():
    with pytest.raises(ValidationError) as info:
        validate_request(ReservationRequest(), MEMBER)
    assert [f.field for f in info.value.fields] == [
        "resource_type",
        "resource_id",
        "purpose",
        "start_time",
        "end_time",
    ]


@pytest.mark.parametrize("end", [at(9), at(8)])
def test_start_must_precede_end(end):
    with pytest.raises(ValidationError) as info:
        validate_request(make_request(at(9), end), MEMBER)
    assert [f.field for f in info.value.fields] == ["end_time"]


def test_unknown_resource_is_not_found():
    with pytest.raises(NotFoundError) as info:
        validate_request(make_request(at(9), at(10), resource_id="999"), MEMBER)
    assert info.value.field == "resource_id"


def test_same_id_under_other_type_is_not_found():
    with pytest.raises(NotFoundError):
        validate_request(make_request(at(9), at(10), resource_type="venue"), MEMBER)


def test_catalog_not_consulted_for_malformed_request(fake_catalog):
    fake_catalog.items.clear()
    with pytest.raises(ValidationError):
        validate_request(make_request(at(10), at(9)), MEMBER)


def test_window_starting_in_the_past_is_rejected():
    with pytest.raises(ValidationError) as info:
        validate_request(make_request(at(9), at(10)), MEMBER, now=at(9, 1))
    assert [f.field for f in info.value.fields] == ["start_time"]


def test_window_starting_now_is_accepted():
    candidate, _ = validate_request(make_request(at(9), at(10)), MEMBER, now=at(9))
    assert candidate.start_time == at(9)
