from __future__ import annotations

import pytest

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.notifications import NoopNotifier
from expense_app.domain.per_diem import PerDiemService, adjusted_mie
from expense_app.domain.per_diem.entities import CreateTravelTrip

from tests.fixtures.gateway_stub import GatewayStub, body, signed_in_context


def test_full_day_without_meals_keeps_full_rate() -> None:
    assert adjusted_mie(79) == 79


def test_all_meals_provided_leaves_nothing() -> None:
    assert adjusted_mie(79, breakfast=True, lunch=True, dinner=True) == 0


def test_travel_day_gets_three_quarters() -> None:
    assert adjusted_mie(79, is_first_or_last_day=True) == pytest.approx(59.25)


def test_meal_deductions_use_the_full_rate() -> None:
    # dinner removes half of the full rate even on a travel day
    assert adjusted_mie(80, dinner=True, is_first_or_last_day=True) == pytest.approx(20.0)
    assert adjusted_mie(80, breakfast=True) == pytest.approx(64.0)
    assert adjusted_mie(80, lunch=True) == pytest.approx(56.0)


@pytest.mark.parametrize("rate", [0, 1, 59, 79, 151.5])
def test_never_negative(rate: float) -> None:
    assert adjusted_mie(rate, breakfast=True, lunch=True, dinner=True, is_first_or_last_day=True) == 0


@pytest.mark.asyncio
async def test_create_trip_starts_planned() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/travel_trips", [
        {"id": "t1", "status": "planned", "trip_name": "Denver", "travel_trip_days": [
            {"id": "d1", "trip_id": "t1", "day_number": 1, "is_first_day": True},
        ]},
    ])
    service = PerDiemService(stub.client(), signed_in_context(), NoopNotifier())

    trip = await service.create_trip(
        CreateTravelTrip(trip_name="Denver", destination_city="Denver", start_date="2026-03-02", end_date="2026-03-04")
    )

    sent = body(stub.calls[0])
    assert sent["status"] == "planned"
    assert sent["user_id"] == "user-1"
    assert sent["organization_id"] == "org-1"
    assert trip.travel_trip_days[0].is_first_day


@pytest.mark.asyncio
async def test_trip_ending_before_it_starts_is_rejected() -> None:
    stub = GatewayStub()
    service = PerDiemService(stub.client(), signed_in_context(), NoopNotifier())

    with pytest.raises(ValidationFailedError):
        await service.create_trip(
            CreateTravelTrip(trip_name="Back", destination_city="X", start_date="2026-03-04", end_date="2026-03-02")
        )
    assert stub.calls == []


@pytest.mark.asyncio
async def test_lookup_rate_reads_first_row() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/rpc/get_per_diem_rate", [
        {"location": "Denver, CO", "lodging_rate": 199, "mie_rate": 79, "total_rate": 278},
    ])
    service = PerDiemService(stub.client(), signed_in_context(), NoopNotifier())

    rate = await service.lookup_rate("Denver, CO")

    assert rate.mie_rate == 79
    assert body(stub.calls[0]) == {
        "p_organization_id": "org-1",
        "p_location": "Denver, CO",
        "p_country_code": "US",
    }
