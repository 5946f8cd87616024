"""
Request Sync Client
===================

Keeps a local snapshot of "my requests" for a customer or technician.

Pushes from the Socket.IO channel are merged into the snapshot as they
arrive, but they are best effort: nothing is replayed after a dropped
connection. The authoritative path is a full re-fetch of the list
endpoints, repeated every ``settings.poll_interval_seconds``.

Usage::

    async with RequestSyncClient("http://localhost:5000", "customer", 7) as sync:
        await sync.refresh()
        sync.apply_push_message({"type": "update", "requestId": 12, ...})
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from tap4service.core.config import settings

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SECONDS = 10.0

# Push envelope keys that mirror list-endpoint columns one to one
_MERGED_FIELDS = (
    "status",
    "technician_scheduled_time",
    "customer_availability_1",
    "customer_availability_2",
    "repair_description",
    "created_at",
    "customer_name",
    "customer_address",
    "customer_city",
    "customer_postal_code",
    "technician_note",
    "technician_name",
    "payment_status",
    "region",
)


def region_key(name: Optional[str]) -> str:
    """Comparison key for a region string: trimmed, casefolded, plain apostrophe."""
    return (name or "").strip().replace("’", "'").casefold()


class SyncError(Exception):
    """Raised when a list endpoint answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RequestSyncClient:
    """Poll-and-merge view of one user's requests.

    ``requests`` maps request id to the row returned by the list endpoint.
    Customers also track ``proposals`` (by proposal id); technicians also
    track the ``available`` job pool, limited to the ``regions`` their
    profile lists.
    """

    def __init__(
        self,
        base_url: str,
        role: str,
        user_id: int,
        *,
        poll_interval: Optional[float] = None,
        api_prefix: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if role not in ("customer", "technician"):
            raise ValueError(f"Unknown role: {role!r}")
        self.role = role
        self.user_id = user_id
        self.poll_interval = (
            settings.poll_interval_seconds if poll_interval is None else poll_interval
        )
        prefix = settings.api_prefix if api_prefix is None else api_prefix
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + prefix,
            timeout=_REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )
        self.requests: dict[int, dict[str, Any]] = {}
        self.proposals: dict[int, dict[str, Any]] = {}
        self.available: dict[int, dict[str, Any]] = {}
        # Region keys served by a technician; unknown until the first refresh
        self.regions: Optional[set[str]] = None

    async def __aenter__(self) -> "RequestSyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- Polling --------------------------------------------------------

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._client.get(path, params=params)
        if response.status_code >= 400:
            raise SyncError(
                f"GET {path} failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    async def refresh(self) -> dict[int, dict[str, Any]]:
        """Replace the snapshot with a full re-fetch of the list endpoints."""
        rows = await self._get_json(f"/requests/{self.role}/{self.user_id}")
        self.requests = {row["id"]: row for row in rows}

        if self.role == "customer":
            proposals = await self._get_json(f"/requests/pending-proposals/{self.user_id}")
            self.proposals = {p["id"]: p for p in proposals}
        else:
            profile = await self._get_json(f"/technician/profile/{self.user_id}")
            self.regions = {region_key(name) for name in profile.get("regions", [])}
            pool = await self._get_json(
                "/requests/available", params={"technicianId": self.user_id}
            )
            self.available = {row["id"]: row for row in pool}

        logger.debug(
            "Refreshed %s=%s: %d requests", self.role, self.user_id, len(self.requests)
        )
        return self.requests

    async def run(self, stop: asyncio.Event) -> None:
        """Refresh on a fixed interval until ``stop`` is set.

        Transport and HTTP errors are logged and the next cycle tries again.
        """
        while not stop.is_set():
            try:
                await self.refresh()
            except (httpx.HTTPError, SyncError) as exc:
                logger.warning("Poll failed for %s=%s: %s", self.role, self.user_id, exc)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue

    # -- Push merging ---------------------------------------------------

    def apply_push_message(self, message: dict[str, Any]) -> bool:
        """Merge one pushed envelope into the snapshot.

        Returns True when the snapshot changed. An ``update`` for a request
        that is not in the snapshot is ignored; the next refresh picks it up.
        A ``new_job`` only joins a technician's pool when its region is one
        they serve, which needs one refresh to have loaded their regions.
        """
        kind = message.get("type")
        request_id = message.get("requestId")
        if request_id is None:
            return False

        if kind == "update":
            return self._merge_update(request_id, message)
        if kind == "new_job":
            return self._merge_new_job(request_id, message)
        if kind == "proposal":
            return self._merge_proposal(request_id, message)
        return False

    def _merge_update(self, request_id: int, message: dict[str, Any]) -> bool:
        changed = False
        row = self.requests.get(request_id)
        if row is not None:
            merged = dict(row)
            for name in _MERGED_FIELDS:
                if message.get(name) is not None:
                    merged[name] = message[name]
            # technician_id may legitimately become null on release
            if "technician_id" in message:
                merged["technician_id"] = message["technician_id"]
                if message["technician_id"] is None:
                    merged["technician_name"] = None
                    merged["technician_scheduled_time"] = None
            changed = merged != row
            self.requests[request_id] = merged

        # The request left the pool
        if message.get("status") != "pending" and request_id in self.available:
            del self.available[request_id]
            changed = True
        return changed

    def _merge_new_job(self, request_id: int, message: dict[str, Any]) -> bool:
        if self.role != "technician":
            return False
        # new_job is broadcast to every technician; keep only our regions
        if self.regions is None or region_key(message.get("region")) not in self.regions:
            logger.debug(
                "Ignored new_job for request=%s in region %r",
                request_id,
                message.get("region"),
            )
            return False
        row = {name: message.get(name) for name in _MERGED_FIELDS}
        row["id"] = request_id
        row["technician_id"] = message.get("technician_id")
        changed = self.available.get(request_id) != row
        self.available[request_id] = row
        return changed

    def _merge_proposal(self, request_id: int, message: dict[str, Any]) -> bool:
        proposal_id = message.get("proposalId")
        if self.role != "customer" or proposal_id is None:
            return False
        if message.get("proposal_status", "pending") != "pending":
            return self.proposals.pop(proposal_id, None) is not None
        row = {
            "id": proposal_id,
            "request_id": request_id,
            "technician_id": message.get("technician_id"),
            "technician_name": message.get("technician_name"),
            "proposed_time": message.get("proposed_time"),
            "status": "pending",
        }
        existing = self.proposals.get(proposal_id)
        if existing is not None:
            row["created_at"] = existing.get("created_at")
        changed = existing != row
        self.proposals[proposal_id] = row
        return changed
