from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from geodiag.features.diagnosis.services.credits import CreditLedger
from geodiag.features.diagnosis.services.diagnosis_service import DiagnosisService
from geodiag.features.diagnosis.utils.security import Identity, identity_from_token
from geodiag.platform.config import Settings

security = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_diagnosis_service(request: Request) -> DiagnosisService:
    return request.app.state.diagnosis_service


def get_credit_ledger(request: Request) -> CreditLedger:
    return request.app.state.credit_ledger


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_app_settings),
) -> Identity:
    """Dependency resolving the bearer token to a verified identity."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return identity_from_token(
            credentials.credentials,
            settings.IDENTITY_JWT_SECRET,
            settings.IDENTITY_JWT_ALGORITHM,
            settings.IDENTITY_JWT_AUDIENCE,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
