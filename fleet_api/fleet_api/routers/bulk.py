"""Response helper shared by the ``POST /import`` endpoints."""

from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from fleet_api.schemas import ImportResult


def import_response(result: ImportResult) -> JSONResponse:
    """201 when every item was created, 207 when some were rejected."""
    code = status.HTTP_207_MULTI_STATUS if result.errors else status.HTTP_201_CREATED
    return JSONResponse(status_code=code, content=result.model_dump(mode="json", by_alias=True))
