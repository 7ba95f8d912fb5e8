"""
Bank settings API routes - receiving account configuration and aggregator browsing.
"""
from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_bank_settings_service
from application.dtos.payments import (
    BankAccountDTO,
    BankSettingsCreate,
    BankSettingsResponse,
    BankSettingsUpdate,
    ConnectionTestRequest,
    ConnectionTestResult,
    MutationQuery,
)
from application.services.bank_settings_service import BankSettingsApplicationService
from core.i18n import t
from core.response import Response as ApiResponse, paginated_response, success_response


router = APIRouter(prefix="/bank-settings", tags=["Bank Settings"])


@router.post(
    "",
    summary="Save bank settings",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[BankSettingsResponse],
)
async def save_settings(
    payload: BankSettingsCreate,
    service: BankSettingsApplicationService = Depends(get_bank_settings_service),
):
    """Saving an active row deactivates every other row."""
    saved = await service.save(payload)
    return success_response(data=saved, message=t("payments.settings.saved", default="Settings saved"))


@router.get("", summary="List bank settings", response_model=ApiResponse[List[BankSettingsResponse]])
async def list_settings(service: BankSettingsApplicationService = Depends(get_bank_settings_service)):
    return success_response(data=await service.list_settings())


@router.get("/active", summary="Active bank settings", response_model=ApiResponse[BankSettingsResponse])
async def get_active_settings(service: BankSettingsApplicationService = Depends(get_bank_settings_service)):
    return success_response(data=await service.get_active())


@router.patch("/{settings_id}", summary="Update bank settings", response_model=ApiResponse[BankSettingsResponse])
async def update_settings(
    settings_id: int,
    payload: BankSettingsUpdate,
    service: BankSettingsApplicationService = Depends(get_bank_settings_service),
):
    updated = await service.update(settings_id, payload)
    return success_response(data=updated, message=t("payments.settings.updated", default="Settings updated"))


@router.delete("/{settings_id}", summary="Delete bank settings")
async def delete_settings(
    settings_id: int,
    service: BankSettingsApplicationService = Depends(get_bank_settings_service),
):
    await service.delete(settings_id)
    return success_response(
        data={"id": settings_id},
        message=t("payments.settings.deleted", default="Settings deleted"),
    )


@router.post(
    "/test-connection",
    summary="Test aggregator credentials",
    response_model=ApiResponse[ConnectionTestResult],
)
async def test_connection(
    payload: ConnectionTestRequest,
    service: BankSettingsApplicationService = Depends(get_bank_settings_service),
):
    result = await service.test_connection(payload.access_token)
    return success_response(data=result, message=result.message)


@router.get("/accounts", summary="Aggregator bank accounts", response_model=ApiResponse[List[BankAccountDTO]])
async def list_bank_accounts(service: BankSettingsApplicationService = Depends(get_bank_settings_service)):
    return success_response(data=await service.list_bank_accounts())


@router.get("/mutations", summary="Browse bank mutations")
async def list_mutations(
    bank_id: Optional[str] = Query(None),
    type: Optional[Literal["CREDIT", "DEBIT"]] = Query(None),
    amount: Optional[int] = Query(None, gt=0),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    service: BankSettingsApplicationService = Depends(get_bank_settings_service),
):
    query = MutationQuery(
        bank_id=bank_id,
        type=type,
        amount=amount,
        start_date=start_date,
        end_date=end_date,
        page=page,
        per_page=per_page,
    )
    result = await service.list_mutations(query)
    return paginated_response(items=result.items, total=result.total, page=result.page, size=result.per_page)
