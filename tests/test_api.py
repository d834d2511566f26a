import asyncio
from datetime import timedelta

from app.models import BookingStatus
from app.services.availability_service import MSG_HAS_BOOKINGS, MSG_OVERLAP

from tests.conftest import add_booking, add_rule, auth_headers, upcoming_weekday

API = "/api/v1"


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


async def test_signup_login_and_me(client):
    r = await client.post(
        f"{API}/auth/signup",
        json={"email": "Nowy@Example.com", "password": "tajnehaslo", "full_name": "Nowy", "role": "provider"},
    )
    assert r.status_code == 201
    tokens = r.json()

    r = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert r.json()["email"] == "nowy@example.com"
    assert r.json()["role"] == "provider"

    r = await client.post(f"{API}/auth/login", json={"email": "nowy@example.com", "password": "zlehaslo"})
    assert r.status_code == 401
    r = await client.post(f"{API}/auth/login", json={"email": "nowy@example.com", "password": "tajnehaslo"})
    assert r.status_code == 200

    r = await client.post(f"{API}/auth/refresh", headers={"X-Refresh-Token": tokens["refresh_token"]})
    assert r.status_code == 200
    # rotated: the old refresh token no longer works
    r = await client.post(f"{API}/auth/refresh", headers={"X-Refresh-Token": tokens["refresh_token"]})
    assert r.status_code == 401


async def test_calendar_rule_crud(client, provider):
    headers = auth_headers(provider)
    r = await client.post(
        f"{API}/provider/calendar/slots",
        json={"day_of_week": 0, "start_time": "09:00", "end_time": "17:00", "break_start": "12:00", "break_end": "13:00"},
        headers=headers,
    )
    assert r.status_code == 201
    rule = r.json()
    assert rule["day_name"] == "Poniedziałek"
    assert rule["start_time"] == "09:00"
    assert rule["max_bookings"] == 1

    r = await client.post(
        f"{API}/provider/calendar/slots",
        json={"day_of_week": 0, "start_time": "16:00", "end_time": "18:00"},
        headers=headers,
    )
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == MSG_OVERLAP
    assert body["code"] == "conflict"
    assert body["existing_slot"]["id"] == rule["id"]

    r = await client.put(f"{API}/provider/calendar/slots/{rule['id']}", json={"max_bookings": 2}, headers=headers)
    assert r.status_code == 200
    assert r.json()["max_bookings"] == 2

    r = await client.delete(f"{API}/provider/calendar/slots/{rule['id']}", headers=headers)
    assert r.status_code == 200
    r = await client.get(f"{API}/provider/calendar/slots", headers=headers)
    assert r.json() == []


async def test_calendar_rejects_seconds_and_offsets(client, provider):
    headers = auth_headers(provider)
    for start in ("09:00:30", "09:00+02:00"):
        r = await client.post(
            f"{API}/provider/calendar/slots",
            json={"day_of_week": 0, "start_time": start, "end_time": "17:00"},
            headers=headers,
        )
        assert r.status_code == 422, start
        assert "detail" in r.json()

    r = await client.post(
        f"{API}/provider/calendar/slots", json={"day_of_week": 0, "start_time": "09:00", "end_time": "17:00"}, headers=headers
    )
    rule_id = r.json()["id"]
    for end in ("17:00:01", "17:00Z"):
        r = await client.put(f"{API}/provider/calendar/slots/{rule_id}", json={"end_time": end}, headers=headers)
        assert r.status_code == 422, end
    r = await client.get(f"{API}/provider/calendar/slots", headers=headers)
    assert r.json()[0]["end_time"] == "17:00"


async def test_customer_cannot_manage_calendar(client, customer):
    r = await client.get(f"{API}/provider/calendar/slots", headers=auth_headers(customer))
    assert r.status_code == 403
    assert r.json()["code"] == "forbidden"


async def test_unauthenticated_request(client):
    r = await client.get(f"{API}/provider/bookings")
    assert r.status_code == 401


async def test_delete_rule_with_confirmed_booking(client, session, provider, customer, service):
    day = upcoming_weekday(0)
    rule = await add_rule(session, provider.id, day_of_week=0)
    await add_booking(session, customer.id, provider.id, service.id, day, status=BookingStatus.CONFIRMED)

    r = await client.delete(f"{API}/provider/calendar/slots/{rule.id}", headers=auth_headers(provider))
    assert r.status_code == 422
    assert r.json()["error"] == MSG_HAS_BOOKINGS
    r = await client.get(f"{API}/provider/calendar/slots", headers=auth_headers(provider))
    assert [x["id"] for x in r.json()] == [rule.id]


async def test_public_slots_and_exceptions(client, session, provider):
    day = upcoming_weekday(2)
    await add_rule(session, provider.id, day_of_week=2)
    r = await client.get(f"{API}/providers/{provider.id}/availability/slots", params={"date": day.isoformat(), "duration_minutes": 60})
    assert r.status_code == 200
    assert r.json()["slots"][0] == "09:00"
    assert r.json()["slots"][-1] == "16:00"

    r = await client.post(
        f"{API}/provider/calendar/exceptions",
        json={"start_date": day.isoformat(), "end_date": (day + timedelta(days=2)).isoformat()},
        headers=auth_headers(provider),
    )
    assert r.status_code == 201
    assert r.json()["reason"] == "Vacation"

    r = await client.get(f"{API}/providers/{provider.id}/availability/slots", params={"date": day.isoformat()})
    assert r.json()["slots"] == []


async def test_slots_for_unknown_provider(client, customer):
    r = await client.get(f"{API}/providers/{customer.id}/availability/slots", params={"date": "2030-01-07"})
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


async def test_two_simultaneous_bookings(client, session, provider, customer, second_customer, service):
    day = upcoming_weekday(0)
    await add_rule(session, provider.id, day_of_week=0)
    payload = {
        "service_id": service.id,
        "provider_id": provider.id,
        "booking_date": day.isoformat(),
        "start_time": "10:00",
        "duration_minutes": 60,
    }
    responses = await asyncio.gather(
        client.post(f"{API}/bookings", json=payload, headers=auth_headers(customer)),
        client.post(f"{API}/bookings", json=payload, headers=auth_headers(second_customer)),
    )
    assert sorted(r.status_code for r in responses) == [201, 422]
    rejected = next(r for r in responses if r.status_code == 422)
    assert rejected.json()["code"] == "conflict"
    created = next(r for r in responses if r.status_code == 201).json()
    assert created["status"] == "pending"
    assert created["start_time"] == "10:00"
    assert created["end_time"] == "11:00"


async def test_self_booking_error_shape(client, session, provider, service):
    day = upcoming_weekday(0)
    await add_rule(session, provider.id, day_of_week=0)
    r = await client.post(
        f"{API}/bookings",
        json={"service_id": service.id, "provider_id": provider.id, "booking_date": day.isoformat(), "start_time": "10:00"},
        headers=auth_headers(provider),
    )
    assert r.status_code == 422
    assert r.json()["code"] == "self_booking"


async def test_booking_start_time_rejects_seconds_and_offsets(client, session, provider, customer, service):
    day = upcoming_weekday(0)
    await add_rule(session, provider.id, day_of_week=0)
    for start in ("10:00:30", "10:00+02:00"):
        r = await client.post(
            f"{API}/bookings",
            json={"service_id": service.id, "provider_id": provider.id, "booking_date": day.isoformat(), "start_time": start},
            headers=auth_headers(customer),
        )
        assert r.status_code == 422, start


async def test_provider_booking_flow(client, session, provider, customer, service):
    day = upcoming_weekday(0)
    booking = await add_booking(session, customer.id, provider.id, service.id, day)
    headers = auth_headers(provider)

    r = await client.post(f"{API}/provider/bookings/{booking.id}/start", headers=headers)
    assert r.status_code == 422
    assert r.json()["current_status"] == "pending"

    r = await client.post(f"{API}/provider/bookings/{booking.id}/accept", json={"price": 180}, headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "confirmed"
    r = await client.post(f"{API}/provider/bookings/{booking.id}/start", headers=headers)
    assert r.json()["status"] == "in_progress"
    r = await client.post(f"{API}/provider/bookings/{booking.id}/complete", json={"final_price": 200}, headers=headers)
    assert r.json()["status"] == "completed"
    assert r.json()["service_price"] == 200

    r = await client.get(f"{API}/bookings/{booking.id}", headers=auth_headers(customer))
    assert r.json()["status"] == "completed"


async def test_provider_listing_and_visibility(client, session, provider, customer, service):
    day = upcoming_weekday(0)
    booking = await add_booking(session, customer.id, provider.id, service.id, day, status=BookingStatus.CONFIRMED)
    headers = auth_headers(provider)

    r = await client.get(f"{API}/provider/bookings", headers=headers)
    body = r.json()
    assert [b["id"] for b in body["data"]] == [booking.id]
    assert body["counts"]["confirmed"] == 1
    assert body["pagination"] == {"current_page": 1, "last_page": 1, "per_page": 15, "total": 1}

    r = await client.delete(f"{API}/provider/bookings/{booking.id}", headers=headers)
    assert r.json() == {"success": True, "changed": True, "hidden_by_provider": True}
    r = await client.get(f"{API}/provider/bookings", headers=headers)
    assert r.json()["data"] == []
    r = await client.get(f"{API}/provider/bookings", params={"hidden": "all"}, headers=headers)
    assert r.json()["data"][0]["status"] == "confirmed"

    r = await client.post(f"{API}/provider/bookings/{booking.id}/restore", headers=headers)
    assert r.json()["changed"] is True
    r = await client.post(f"{API}/provider/bookings/{booking.id}/restore", headers=headers)
    assert r.json()["changed"] is False


async def test_listing_rejects_unknown_sort_column(client, provider):
    r = await client.get(f"{API}/provider/bookings", params={"sort_by": "password"}, headers=auth_headers(provider))
    assert r.status_code == 422


async def test_complete_overdue_endpoint(client, session, provider, customer, service):
    past = upcoming_weekday(0, weeks_ahead=-2)
    for _ in range(3):
        await add_booking(session, customer.id, provider.id, service.id, past, status=BookingStatus.CONFIRMED)
    future = await add_booking(
        session, customer.id, provider.id, service.id, upcoming_weekday(0), status=BookingStatus.CONFIRMED
    )
    headers = auth_headers(provider)

    r = await client.post(f"{API}/provider/bookings/complete-overdue", headers=headers)
    assert r.json() == {"success": True, "count": 3}
    r = await client.post(f"{API}/provider/bookings/complete-overdue", headers=headers)
    assert r.json()["count"] == 0
    r = await client.get(f"{API}/provider/bookings/{future.id}", headers=headers)
    assert r.json()["status"] == "confirmed"


async def test_statistics_endpoint(client, session, provider, customer, service):
    await add_booking(session, customer.id, provider.id, service.id, upcoming_weekday(0), status=BookingStatus.COMPLETED)
    r = await client.get(f"{API}/provider/bookings/statistics", headers=auth_headers(provider))
    assert r.status_code == 200
    assert r.json()["completed_bookings"] == 1
    assert r.json()["completion_rate"] == 100.0

    r = await client.get(f"{API}/provider/bookings/statistics", headers=auth_headers(customer))
    assert r.status_code == 403


async def test_customer_cancel(client, session, provider, customer, service):
    booking = await add_booking(session, customer.id, provider.id, service.id, upcoming_weekday(0))
    r = await client.patch(f"{API}/bookings/{booking.id}/cancel", json={"reason": "Zmiana planów"}, headers=auth_headers(customer))
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert r.json()["cancellation_reason"] == "Zmiana planów"

    r = await client.get(f"{API}/bookings", headers=auth_headers(customer))
    assert [b["id"] for b in r.json()] == [booking.id]


async def test_calendar_view(client, session, provider, customer, service):
    day = upcoming_weekday(0)
    await add_rule(session, provider.id, day_of_week=0)
    await add_booking(session, customer.id, provider.id, service.id, day)
    r = await client.get(
        f"{API}/provider/calendar",
        params={"start": day.isoformat(), "end": (day + timedelta(days=6)).isoformat()},
        headers=auth_headers(provider),
    )
    body = r.json()
    assert len(body["slots"]) == 1
    assert body["bookings"][0]["customer_name"] == "Anna Nowak"
    assert body["bookings"][0]["service_name"] == "Naprawa kranu"
    assert body["bookings"][0]["start_time"] == "10:00"
