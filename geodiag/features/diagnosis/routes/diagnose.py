from fastapi import APIRouter, Depends, status

from geodiag.features.diagnosis.dependencies import (
    get_app_settings,
    get_credit_ledger,
    get_current_identity,
    get_diagnosis_service,
)
from geodiag.features.diagnosis.schemas.diagnosis import (
    DiagnoseRequest,
    DiagnosisResponse,
    UsageResponse,
)
from geodiag.features.diagnosis.services.credits import CreditLedger
from geodiag.features.diagnosis.services.diagnosis_service import DiagnosisService
from geodiag.features.diagnosis.utils.security import Identity
from geodiag.platform.config import Settings
from geodiag.platform.response import api_response

router = APIRouter(tags=["diagnosis"])


@router.post("/diagnose")
async def diagnose(
    payload: DiagnoseRequest,
    identity: Identity = Depends(get_current_identity),
    service: DiagnosisService = Depends(get_diagnosis_service),
):
    outcome = await service.diagnose(payload.url, identity, payload.language)

    return api_response(
        data=DiagnosisResponse(
            url=outcome.digest_url,
            language=outcome.language,
            model=outcome.model_tag,
            cached=outcome.cached,
            result=outcome.result,
        ),
        message="Diagnosis retrieved from cache" if outcome.cached else "Diagnosis complete",
        status_code=status.HTTP_200_OK,
    )


@router.get("/me/usage")
async def get_usage(
    identity: Identity = Depends(get_current_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
    settings: Settings = Depends(get_app_settings),
):
    profile = await ledger.ensure_profile(identity.user_id, settings.DEFAULT_LANGUAGE)

    return api_response(
        data=UsageResponse(
            user_id=profile.id,
            is_premium=profile.is_premium,
            free_credits=profile.free_credits,
            pro_monthly_usage=profile.pro_monthly_usage,
            pro_monthly_limit=settings.PRO_MONTHLY_LIMIT,
        ),
        message="Usage retrieved",
    )
