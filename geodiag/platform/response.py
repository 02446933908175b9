from typing import Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    error_code: Optional[str] = None,
) -> JSONResponse:
    """
    Envelope shared by every endpoint: {status_code, status, message, data}.

    `status` is "success" below 400 and "error" otherwise. When `error_code`
    is given it is placed in `data` so clients can branch on the failure class
    without parsing the message.
    """
    status_str = "success" if status_code < 400 else "error"
    payload = jsonable_encoder(data) if data is not None else {}
    if error_code is not None:
        payload = {**payload, "error_code": error_code}

    return JSONResponse(
        status_code=status_code,
        content={
            "status_code": status_code,
            "status": status_str,
            "message": message,
            "data": payload,
        },
    )
