from datetime import datetime
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from typing import Any, Optional, Dict


def success(
    data: Optional[Any] = None,
    message: str = "Success",
    meta: Optional[Dict] = None,
):
    response = {
        "success": True,
        "message": message,
        "data": data,
        "errors": None,
    }

    if meta is not None:
        response["meta"] = meta

    # Ensure pydantic models, datetimes, etc. are JSON-serializable.
    return jsonable_encoder(response)


def error(
    message: str = "Error",
    errors: Optional[Any] = None,
    status_code: int = 400,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "success": False,
                "message": message,
                "data": None,
                "errors": errors or [],
                "timestamp": f"{datetime.utcnow().isoformat()}Z",
            }
        ),
    )
