from typing import Any

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def ok(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    """Wrap ``data`` in the uniform ``{statusCode, success, message, data}`` envelope."""
    body = {
        "statusCode": status_code,
        "success": status_code < 400,
        "message": message,
        "data": data,
    }
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, custom_encoder={ObjectId: str}),
    )
