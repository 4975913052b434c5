import math
from datetime import datetime
from typing import Any, Optional, Dict

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


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

    # Decimals, datetimes and nested dicts become JSON-safe values
    return jsonable_encoder(response)


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


def paginated_response(
    items,
    total: int,
    page: int,
    limit: int,
    message: str = "Success",
    **extra_meta,
):
    meta = {"pagination": pagination_meta(total, page, limit)}
    meta.update(extra_meta)
    return success(data=items, message=message, meta=meta)


def error_response(status_code: int, message: str, errors: Optional[list] = None) -> JSONResponse:
    """The failure envelope shared by every exception handler."""
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
