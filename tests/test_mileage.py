from __future__ import annotations

import pytest

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.mileage import MileageService, total_miles, trip_stats
from expense_app.domain.mileage.entities import CreateMileageTrip, MileageFilters, MileageTrip, UpdateMileageTrip
from expense_app.domain.notifications import NoopNotifier

from tests.fixtures.gateway_stub import GatewayStub, body, params, signed_in_context

RATE_2026 = {"id": "rate-1", "category": "business", "rate": 0.7, "effective_date": "2026-01-01", "end_date": None}


def service_for(stub: GatewayStub) -> MileageService:
    return MileageService(stub.client(), signed_in_context(), NoopNotifier())


def test_round_trip_doubles_distance() -> None:
    assert total_miles(12.5, True) == 25
    assert total_miles(12.5, False) == 12.5


def test_stats_count_by_status_and_category() -> None:
    trips = [
        MileageTrip(id="t1", status="draft", category="business", total_miles=10, reimbursement_amount=7.0),
        MileageTrip(id="t2", status="approved", category="business", total_miles=20, reimbursement_amount=14.0),
        MileageTrip(id="t3", status="approved", category="medical", total_miles=5, reimbursement_amount=1.05),
    ]

    stats = trip_stats(trips)

    assert stats.total_trips == 3
    assert stats.total_miles == 35
    assert stats.total_reimbursement == pytest.approx(22.05)
    assert stats.trips_by_status == {"draft": 1, "submitted": 0, "approved": 2, "rejected": 0, "reimbursed": 0}
    assert stats.trips_by_category == {"business": 2, "medical": 1, "charity": 0, "moving": 0}


@pytest.mark.asyncio
async def test_create_trip_stamps_rate_in_effect_on_trip_date() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/irs_mileage_rates", [RATE_2026])
        .on("POST", "/rest/v1/mileage_trips", [{"id": "t1", "status": "draft", "irs_rate": 0.7}])
    )

    trip = await service_for(stub).create_trip(
        CreateMileageTrip(trip_date="2026-03-10", origin_address="Office", destination_address="Client", distance_miles=14)
    )

    lookup = params(stub.calls_to("/rest/v1/irs_mileage_rates")[0])
    assert lookup["category"] == ["eq.business"]
    assert lookup["effective_date"] == ["lte.2026-03-10"]
    assert lookup["or"] == ["(end_date.is.null,end_date.gte.2026-03-10)"]
    assert lookup["order"] == ["effective_date.desc"]
    assert lookup["limit"] == ["1"]

    sent = body(stub.calls_to("/rest/v1/mileage_trips", "POST")[0])
    assert sent["irs_rate"] == 0.7
    assert sent["status"] == "draft"
    assert sent["category"] == "business"
    assert sent["user_id"] == "user-1"
    assert trip.id == "t1"


@pytest.mark.asyncio
async def test_create_trip_without_a_rate_is_rejected_before_insert() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/irs_mileage_rates", [])

    with pytest.raises(ValidationFailedError, match="No IRS rate"):
        await service_for(stub).create_trip(
            CreateMileageTrip(trip_date="1990-01-01", origin_address="A", destination_address="B", distance_miles=3)
        )
    assert stub.calls_to("/rest/v1/mileage_trips") == []


@pytest.mark.asyncio
async def test_changing_category_refreshes_rate_using_stored_date() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/mileage_trips", {"trip_date": "2026-02-01", "category": "business"})
        .on("GET", "/rest/v1/irs_mileage_rates", [{"id": "rate-m", "category": "medical", "rate": 0.21}])
        .on("PATCH", "/rest/v1/mileage_trips", [{"id": "t1", "category": "medical", "irs_rate": 0.21}])
    )

    await service_for(stub).update_trip("t1", UpdateMileageTrip(category="medical"))

    lookup = params(stub.calls_to("/rest/v1/irs_mileage_rates")[0])
    assert lookup["category"] == ["eq.medical"]
    assert lookup["effective_date"] == ["lte.2026-02-01"]
    sent = body(stub.calls_to("/rest/v1/mileage_trips", "PATCH")[0])
    assert sent["irs_rate"] == 0.21
    assert sent["category"] == "medical"


@pytest.mark.asyncio
async def test_update_without_date_or_category_keeps_rate() -> None:
    stub = GatewayStub().on("PATCH", "/rest/v1/mileage_trips", [{"id": "t1", "purpose": "Client visit"}])

    await service_for(stub).update_trip("t1", UpdateMileageTrip(purpose="Client visit"))

    assert [call.method for call in stub.calls] == ["PATCH"]
    assert "irs_rate" not in body(stub.calls[0])


@pytest.mark.asyncio
async def test_reimbursement_rounds_to_cents() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/irs_mileage_rates", [{"id": "r", "rate": 0.67, "effective_date": "2026-01-01"}])

    result = await service_for(stub).calculate_reimbursement(12.3, False, trip_date="2026-05-01")

    assert result.total_miles == 12.3
    assert result.reimbursement_amount == pytest.approx(8.24)
    assert result.rate_effective_date == "2026-01-01"


@pytest.mark.asyncio
async def test_reject_records_reviewer_and_reason() -> None:
    stub = GatewayStub().on("PATCH", "/rest/v1/mileage_trips", [{"id": "t1", "status": "rejected"}])

    await service_for(stub).reject_trip("t1", "Commute is not reimbursable")

    sent = body(stub.calls[0])
    assert sent["status"] == "rejected"
    assert sent["rejected_by"] == "user-1"
    assert sent["rejection_reason"] == "Commute is not reimbursable"
    assert "rejected_at" in sent


@pytest.mark.asyncio
async def test_trip_filters_render_to_query() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/mileage_trips", [])

    await service_for(stub).get_all_trips(
        MileageFilters(status=["submitted", "approved"], has_expense=False, search_query="airport")
    )
    await service_for(stub).get_all_trips(MileageFilters(status="draft", has_expense=True))

    first, second = (params(call) for call in stub.calls)
    assert first["organization_id"] == ["eq.org-1"]
    assert first["status"] == ['in.("submitted","approved")']
    assert first["expense_id"] == ["is.null"]
    assert first["or"] == [
        "(origin_address.ilike.%airport%,destination_address.ilike.%airport%,purpose.ilike.%airport%)"
    ]
    assert second["status"] == ["eq.draft"]
    assert second["expense_id"] == ["not.is.null"]


@pytest.mark.asyncio
async def test_convert_trip_returns_expense_id() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/rpc/convert_trip_to_expense", "exp-9")

    expense_id = await service_for(stub).convert_trip_to_expense("t1")

    assert expense_id == "exp-9"
    assert body(stub.calls[0]) == {"p_trip_id": "t1", "p_user_id": "user-1"}


@pytest.mark.asyncio
async def test_organization_rate_reports_its_source() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/rpc/get_org_mileage_rate", {"rate": 0.6, "source": "custom", "irs_rate": 0.7})

    rate = await service_for(stub).get_organization_mileage_rate("2026-04-01")

    assert (rate.rate, rate.source, rate.irs_rate) == (0.6, "custom", 0.7)
    assert body(stub.calls[0]) == {"p_organization_id": "org-1", "p_trip_date": "2026-04-01", "p_category": "business"}
