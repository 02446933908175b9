from fastapi import APIRouter

from geodiag.features.diagnosis.routes.diagnose import router as diagnose_router

api_router = APIRouter()

api_router.include_router(diagnose_router)
