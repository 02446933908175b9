import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from geodiag.platform.response import api_response

logger = logging.getLogger(__name__)


class DiagnosisError(Exception):
    """Base class for failures surfaced by the diagnosis pipeline."""

    code = "diagnosis_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    user_message = "Diagnosis failed."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


# ── Bad input: rejected before any network activity ──

class InvalidInput(DiagnosisError):
    code = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST
    user_message = "Please enter a valid public http(s) URL."


class InvalidUrl(InvalidInput):
    code = "invalid_url"


class BlockedHost(InvalidInput):
    code = "blocked_host"
    user_message = "Access to this host is not allowed."


class BlockedNetwork(InvalidInput):
    code = "blocked_network"
    user_message = "This address resolves to a network that is not allowed."


# ── Upstream fetch / render failure ──

class NetworkFailure(DiagnosisError):
    code = "network_failure"
    status_code = status.HTTP_502_BAD_GATEWAY
    user_message = "We could not load the page. Please try again later."


class RenderTimeout(NetworkFailure):
    code = "render_timeout"
    user_message = "The page took too long to load. Please try again later."


class NavigationError(NetworkFailure):
    code = "navigation_error"


# ── Upstream scoring failure ──

class OracleFailure(DiagnosisError):
    code = "oracle_failure"
    status_code = status.HTTP_502_BAD_GATEWAY
    user_message = "The scoring service is unavailable. Please try again later."


class OracleTransportError(OracleFailure):
    code = "oracle_transport_error"


class OracleResponseMalformed(OracleFailure):
    code = "oracle_response_malformed"
    user_message = "The scoring service returned an unreadable result. Please try again."


# ── Usage ──

class UsageLimitExceeded(DiagnosisError):
    code = "usage_limit_exceeded"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    user_message = "You have no diagnoses left in this period."


class CachePersistenceFailure(DiagnosisError):
    """Raised inside the cache layer only; never reaches a client."""

    code = "cache_persistence_failure"


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DiagnosisError)
    async def diagnosis_exception_handler(request: Request, exc: DiagnosisError):
        logger.warning(f"Diagnosis failed with {exc.code}: {exc.detail}")
        return api_response(
            message=exc.user_message,
            status_code=exc.status_code,
            error_code=exc.code,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        response = api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
