"""
E2E: The two-hour notice window on customer cancel and reschedule.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient

from tests.e2e.conftest import (
    CUSTOMER_ID,
    assign_via_api,
    create_request_via_api,
    days_ahead_at,
    get_customer_request,
    local_time,
)

pytestmark = pytest.mark.asyncio


async def _assigned_at(client: AsyncClient, scheduled_time: str) -> int:
    request_id = await create_request_via_api(client)
    resp = await assign_via_api(client, request_id, scheduled_time=scheduled_time)
    assert resp.status_code == 200, resp.text
    return request_id


class TestNoticeWindow:

    async def test_cancel_inside_window_rejected(self, client: AsyncClient):
        request_id = await _assigned_at(client, local_time(timedelta(hours=1)))

        resp = await client.delete(
            f"/api/requests/{request_id}", params={"customerId": CUSTOMER_ID}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Cannot cancel within 2 hours of scheduled time"

        row = await get_customer_request(client, request_id)
        assert row["status"] == "assigned"

    async def test_reschedule_inside_window_rejected(self, client: AsyncClient):
        request_id = await _assigned_at(client, local_time(timedelta(hours=1)))

        resp = await client.put(
            f"/api/requests/reschedule/{request_id}",
            json={"customerId": CUSTOMER_ID, "availability_1": days_ahead_at(3, 9)},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Cannot reschedule within 2 hours of scheduled time"

    async def test_cancel_outside_window_allowed(self, client: AsyncClient):
        request_id = await _assigned_at(client, local_time(timedelta(hours=3)))

        resp = await client.delete(
            f"/api/requests/{request_id}", params={"customerId": CUSTOMER_ID}
        )
        assert resp.status_code == 200

    async def test_unscheduled_request_has_no_window(self, client: AsyncClient):
        request_id = await create_request_via_api(client)
        resp = await client.put(
            f"/api/requests/reschedule/{request_id}",
            json={"customerId": CUSTOMER_ID, "availability_1": days_ahead_at(2, 9)},
        )
        assert resp.status_code == 200
