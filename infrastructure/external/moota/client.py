"""
Moota v2 REST client implementing the BankAggregator port.

One instance is bound to one access token; build a new one when settings change
rather than caching the token globally.
"""
from __future__ import annotations

from datetime import timezone, tzinfo
from typing import Any, List, Optional, Tuple

import httpx

from application.dtos.payments import MutationQuery
from domain.payment.entity import BankAccount, BankMutation
from infrastructure.external.api_clients.base import (
    APIError,
    APIResponse,
    BaseAPIClient,
    TransientAPIError,
)
from shared.codes.payment_codes import INTERNAL_TO_MUTATION_TYPE

from .exceptions import BankAggregatorError, BankAggregatorRecoverableError
from .mapping import account_from_payload, mutations_from_payload


class MootaClient(BaseAPIClient):
    provider: str = "moota"

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = "https://app.moota.co/api/v2",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        user_agent: Optional[str] = None,
        tz: Optional[tzinfo] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        t = timeouts or {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 15.0}
        r = retry or {"max": 2, "base": 0.2}
        super().__init__(
            base_url=base_url,
            timeout=httpx.Timeout(
                connect=t["connect"],
                read=t["read"],
                write=t["write"],
                timeout=t["total"],
            ),
            max_retries=int(r["max"]),
            retry_delay=float(r["base"]),
            headers={"User-Agent": user_agent} if user_agent else None,
            auth_token=access_token,
            transport=transport,
        )
        self.tz = tz or timezone.utc

    async def _call(self, method: str, endpoint: str, **kwargs) -> APIResponse:
        try:
            if method == "POST":
                return await self.post(endpoint, **kwargs)
            return await self.get(endpoint, **kwargs)
        except TransientAPIError as exc:
            raise BankAggregatorRecoverableError(
                exc.message, provider=self.provider, status_code=exc.status_code,
                details={"endpoint": endpoint},
            ) from exc
        except APIError as exc:
            raise BankAggregatorError(
                exc.message, provider=self.provider, status_code=exc.status_code,
                details={"endpoint": endpoint},
            ) from exc

    @staticmethod
    def _body(response: APIResponse) -> dict:
        data = response.data
        return data if isinstance(data, dict) else {}

    async def list_bank_accounts(self) -> List[BankAccount]:
        body = self._body(await self._call("GET", "bank"))
        return [account_from_payload(item) for item in body.get("data") or [] if isinstance(item, dict)]

    async def refresh_mutations(self, bank_id: str) -> None:
        await self._call("POST", f"bank/{bank_id}/refresh")

    async def search_mutations_by_amount(self, bank_id: str, amount: int) -> List[BankMutation]:
        body = self._body(await self._call("GET", f"bank/{bank_id}/mutation/search/{int(amount)}"))
        items = body.get("mutation") or body.get("data") or []
        return mutations_from_payload(items, self.tz)

    async def list_mutations(self, query: MutationQuery) -> Tuple[List[BankMutation], int]:
        params: dict[str, Any] = {"page": query.page, "per_page": query.per_page}
        if query.bank_id:
            params["bank"] = query.bank_id
        if query.type:
            params["type"] = INTERNAL_TO_MUTATION_TYPE[query.type]
        if query.amount:
            params["amount"] = query.amount
        if query.start_date:
            params["start_date"] = query.start_date.isoformat()
        if query.end_date:
            params["end_date"] = query.end_date.isoformat()
        body = self._body(await self._call("GET", "mutation", params=params))
        items = mutations_from_payload(body.get("data") or [], self.tz)
        try:
            total = int(body.get("total", len(items)))
        except (TypeError, ValueError):
            total = len(items)
        return items, total

    async def aclose(self) -> None:
        await self.close()
