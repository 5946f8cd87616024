"""
E2E: Technician time proposals.

Technician proposes an alternate time on an assigned request; the customer
approves (schedule moves) or declines (request returns to the pool). A
proposal is resolved exactly once.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from tests.e2e.conftest import (
    CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    OTHER_TECHNICIAN_ID,
    TECHNICIAN_ID,
    assign_via_api,
    create_request_via_api,
    days_ahead_at,
    get_customer_request,
    pushed_types,
)

pytestmark = pytest.mark.asyncio


async def _assigned_request(client: AsyncClient) -> int:
    request_id = await create_request_via_api(client)
    resp = await assign_via_api(client, request_id)
    assert resp.status_code == 200
    return request_id


async def _propose(client: AsyncClient, request_id: int, proposed_time: str, technician_id=TECHNICIAN_ID):
    return await client.post(
        f"/api/requests/propose/{request_id}",
        json={"technicianId": technician_id, "proposedTime": proposed_time},
    )


async def _resolve(client: AsyncClient, request_id: int, proposal_id: int, action: str,
                   customer_id: int = CUSTOMER_ID):
    return await client.put(
        f"/api/requests/confirm-proposal/{request_id}",
        json={"customerId": customer_id, "proposalId": proposal_id, "action": action},
    )


class TestPropose:

    async def test_propose_creates_pending_proposal(self, client: AsyncClient, pushes):
        request_id = await _assigned_request(client)
        proposed = days_ahead_at(2, 14)

        resp = await _propose(client, request_id, proposed)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Proposal submitted successfully"
        proposal_id = resp.json()["proposalId"]

        resp = await client.get(f"/api/requests/pending-proposals/{CUSTOMER_ID}")
        assert resp.status_code == 200
        proposals = resp.json()
        assert len(proposals) == 1
        assert proposals[0]["id"] == proposal_id
        assert proposals[0]["request_id"] == request_id
        assert proposals[0]["technician_name"] == "Rawiri Plumbing"
        assert proposals[0]["proposed_time"] == proposed
        assert proposals[0]["status"] == "pending"

        # Customer hears about it, technician only once resolved
        assert pushed_types(pushes.to_customer, CUSTOMER_ID)[-1] == "proposal"
        assert "proposal" not in pushed_types(pushes.to_technician, TECHNICIAN_ID)

    async def test_propose_on_request_not_assigned_to_technician(self, client: AsyncClient):
        request_id = await _assigned_request(client)
        resp = await _propose(
            client, request_id, days_ahead_at(2, 14), technician_id=OTHER_TECHNICIAN_ID
        )
        assert resp.status_code == 404
        assert "not assigned to technician" in resp.json()["error"]

    async def test_propose_on_pool_request(self, client: AsyncClient):
        request_id = await create_request_via_api(client)
        resp = await _propose(client, request_id, days_ahead_at(2, 14))
        assert resp.status_code == 404

    async def test_propose_past_time(self, client: AsyncClient):
        request_id = await _assigned_request(client)
        resp = await _propose(client, request_id, "01/01/2020 14:00:00")
        assert resp.status_code == 400
        assert resp.json()["field"] == "proposedTime"


class TestResolve:

    async def test_approve_moves_schedule(self, client: AsyncClient, pushes):
        request_id = await _assigned_request(client)
        proposed = days_ahead_at(3, 8)
        proposal_id = (await _propose(client, request_id, proposed)).json()["proposalId"]

        resp = await _resolve(client, request_id, proposal_id, "approve")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Proposal approved successfully"

        row = await get_customer_request(client, request_id)
        assert row["status"] == "assigned"
        assert row["technician_id"] == TECHNICIAN_ID
        assert row["technician_scheduled_time"] == proposed
        assert row["payment_status"] == "authorized"

        pending = await client.get(f"/api/requests/pending-proposals/{CUSTOMER_ID}")
        assert pending.json() == []
        assert "proposal" in pushed_types(pushes.to_technician, TECHNICIAN_ID)

    async def test_decline_returns_request_to_pool(self, client: AsyncClient, pushes):
        request_id = await _assigned_request(client)
        proposal_id = (await _propose(client, request_id, days_ahead_at(3, 8))).json()["proposalId"]

        resp = await _resolve(client, request_id, proposal_id, "decline")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Proposal declined successfully"

        row = await get_customer_request(client, request_id)
        assert row["status"] == "pending"
        assert row["technician_id"] is None
        assert row["technician_scheduled_time"] is None
        assert row["payment_status"] == "pending"

        available = await client.get("/api/requests/available")
        assert request_id in [r["id"] for r in available.json()]

        # The technician who lost the job gets the released state, not just the verdict
        assert pushed_types(pushes.to_technician, TECHNICIAN_ID) == [
            "update", "proposal", "update",
        ]
        released = pushes.to_technician.await_args_list[-1].args[1]
        assert released["status"] == "pending"
        assert released["technician_id"] is None
        assert pushed_types(pushes.to_technicians)[-1] == "new_job"

    async def test_resolved_exactly_once(self, client: AsyncClient):
        request_id = await _assigned_request(client)
        proposal_id = (await _propose(client, request_id, days_ahead_at(3, 8))).json()["proposalId"]

        assert (await _resolve(client, request_id, proposal_id, "approve")).status_code == 200
        again = await _resolve(client, request_id, proposal_id, "decline")
        assert again.status_code == 404
        assert again.json()["error"] == "Proposal not found or already resolved"

        row = await get_customer_request(client, request_id)
        assert row["status"] == "assigned"

    async def test_other_customer_forbidden(self, client: AsyncClient):
        request_id = await _assigned_request(client)
        proposal_id = (await _propose(client, request_id, days_ahead_at(3, 8))).json()["proposalId"]

        resp = await _resolve(client, request_id, proposal_id, "approve", customer_id=OTHER_CUSTOMER_ID)
        assert resp.status_code == 403

    async def test_invalid_action(self, client: AsyncClient):
        request_id = await _assigned_request(client)
        proposal_id = (await _propose(client, request_id, days_ahead_at(3, 8))).json()["proposalId"]

        resp = await _resolve(client, request_id, proposal_id, "maybe")
        assert resp.status_code == 400

    async def test_proposal_for_other_request(self, client: AsyncClient):
        first = await _assigned_request(client)
        second = await _assigned_request(client)
        proposal_id = (await _propose(client, first, days_ahead_at(3, 8))).json()["proposalId"]

        resp = await _resolve(client, second, proposal_id, "approve")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Proposal not found"

    async def test_release_declines_open_proposals(self, client: AsyncClient):
        request_id = await _assigned_request(client)
        proposal_id = (await _propose(client, request_id, days_ahead_at(3, 8))).json()["proposalId"]

        await client.put(
            f"/api/requests/unassign/{request_id}", json={"technicianId": TECHNICIAN_ID}
        )
        pending = await client.get(f"/api/requests/pending-proposals/{CUSTOMER_ID}")
        assert pending.json() == []

        # The stale proposal can no longer move the request
        resp = await _resolve(client, request_id, proposal_id, "approve")
        assert resp.status_code == 404
        row = await get_customer_request(client, request_id)
        assert row["status"] == "pending"
        assert row["technician_id"] is None

    async def test_failed_resolve_rolls_back_proposal(self, client: AsyncClient):
        """A proposal whose technician lost the request stays pending."""
        request_id = await _assigned_request(client)
        proposal_id = (await _propose(client, request_id, days_ahead_at(3, 8))).json()["proposalId"]

        # Technician completes, so the request is no longer in 'assigned'
        await client.put(
            f"/api/requests/complete-technician/{request_id}",
            json={"technicianId": TECHNICIAN_ID},
        )
        resp = await _resolve(client, request_id, proposal_id, "approve")
        assert resp.status_code == 404
        assert resp.json()["error"] == (
            "Request is no longer assigned to the proposing technician"
        )

        pending = await client.get(f"/api/requests/pending-proposals/{CUSTOMER_ID}")
        assert [p["id"] for p in pending.json()] == [proposal_id]
