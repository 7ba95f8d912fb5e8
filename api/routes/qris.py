"""
QRIS API routes - dynamic payload generation and inspection.
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_qris_service
from application.dtos.payments import (
    QrisDynamicRequest,
    QrisDynamicResponse,
    QrisInspectRequest,
    QrisInspectResponse,
)
from application.services.qris_service import QrisApplicationService
from core.i18n import t
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/qris", tags=["QRIS"])


@router.post("/dynamic", summary="Make a dynamic QRIS payload", response_model=ApiResponse[QrisDynamicResponse])
async def make_dynamic(
    payload: QrisDynamicRequest,
    service: QrisApplicationService = Depends(get_qris_service),
):
    """
    Embed an amount (and optional fee) into a static merchant payload.

    - **fee_type**: `Persentase`/`percentage` or `Rupiah`/`fixed`
    """
    result = service.generate_dynamic(payload)
    return success_response(data=result, message=t("qris.generated", default="QRIS generated"))


@router.post("/inspect", summary="Validate a QRIS payload", response_model=ApiResponse[QrisInspectResponse])
async def inspect(
    payload: QrisInspectRequest,
    service: QrisApplicationService = Depends(get_qris_service),
):
    return success_response(data=service.inspect(payload))
