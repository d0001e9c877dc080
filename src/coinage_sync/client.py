"""Collaborator protocols and the httpx client for the Coinage REST API."""
from __future__ import annotations

import time
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

import httpx

from .config import CoinageSyncSettings
from .constants import Timeouts
from .exceptions import (
    AuthExpiredError,
    FetchError,
    FetchTimeoutError,
    NotificationEmitError,
)
from .logging import get_logger, log_request, log_response, mask_address
from .models import SessionIdentity, TransactionStatus
from .snapshots import BalanceSnapshot, Network

logger = get_logger(__name__)


@runtime_checkable
class BalanceFetcher(Protocol):
    async def fetch_balances(self, identity: SessionIdentity, network: Network) -> BalanceSnapshot:
        ...


@runtime_checkable
class StatusFetcher(Protocol):
    async def fetch_transaction_status(self, transaction_id: str) -> TransactionStatus:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    async def emit_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None:
        ...


class CoinageApiClient:
    """Async client for the balance, deposit, notification and plan endpoints.

    Implements BalanceFetcher, StatusFetcher and NotificationSink.
    """

    def __init__(
        self,
        *,
        base_url: str,
        access_token: str = "",
        timeout_seconds: float = Timeouts.HTTP_DEFAULT,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: CoinageSyncSettings) -> "CoinageApiClient":
        return cls(
            base_url=settings.api_base_url,
            access_token=settings.api_token,
            timeout_seconds=settings.fetch_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_access_token(self, token: str) -> None:
        self._access_token = token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "coinage-sync",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        resource: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = self._headers()
        log_request(logger, method, url, headers, json)

        timeout = httpx.Timeout(self._timeout_seconds, connect=min(Timeouts.HTTP_CONNECT, self._timeout_seconds))
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                if method == "GET":
                    response = await client.get(url, headers=headers, params=params)
                else:
                    response = await client.post(url, headers=headers, json=json)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(
                f"{resource} request timed out",
                resource=resource,
                timeout=self._timeout_seconds,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"{resource} request failed: {exc}", resource=resource) from exc

        duration_ms = (time.monotonic() - started) * 1000
        body = _json_body(response)
        log_response(logger, response.status_code, body, duration_ms)

        if response.status_code == 401:
            raise AuthExpiredError("session credentials rejected", resource=resource, status_code=401)
        if response.status_code >= 400:
            raise FetchError(
                str(body.get("message") or f"{resource} request failed"),
                resource=resource,
                status_code=response.status_code,
            )
        if body.get("success") is False:
            raise FetchError(
                str(body.get("message") or f"{resource} request was not successful"),
                resource=resource,
                status_code=response.status_code,
            )
        return body

    async def fetch_balances(self, identity: SessionIdentity, network: Network) -> BalanceSnapshot:
        body = await self._request(
            "GET",
            "/api/balance-sync/fresh",
            resource="balances",
            params={"address": identity.public_key, "network": network.value},
        )
        data = body.get("data")
        if not isinstance(data, Mapping):
            data = body
        snapshot = BalanceSnapshot.from_payload(data, owner=identity.public_key, network=network)
        logger.debug(
            "Fetched balances",
            address=mask_address(identity.public_key),
            network=snapshot.network.value,
            token_count=len(snapshot.balances),
        )
        return snapshot

    async def fetch_transaction_status(self, transaction_id: str) -> TransactionStatus:
        body = await self._request(
            "GET",
            f"/api/deposits/transactions/{transaction_id}",
            resource="deposit_status",
        )
        transaction = body.get("transaction") or body.get("data")
        if not isinstance(transaction, Mapping):
            raise FetchError("deposit status response has no transaction", resource="deposit_status")
        return TransactionStatus.from_payload(transaction_id, transaction)

    async def emit_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None:
        try:
            await self._request(
                "POST",
                "/api/notifications/create",
                resource="notification",
                json={
                    "userId": user_id,
                    "title": title,
                    "message": message,
                    "sender": "coinage",
                    "data": dict(payload),
                },
            )
        except FetchError as exc:
            raise NotificationEmitError(
                f"notification delivery failed: {exc.message}",
                token=payload.get("token"),
                details=dict(exc.details),
            ) from exc

    async def fetch_user_plan(self, user_id: str) -> Optional[str]:
        body = await self._request("GET", f"/api/user-plans/user/{user_id}", resource="user_plan")
        data = body.get("data") or {}
        plan = data.get("userPlan") if isinstance(data, Mapping) else None
        return str(plan).upper() if plan else None


def _json_body(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text[:200]}
    return body if isinstance(body, dict) else {"data": body}
