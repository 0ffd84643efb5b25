"""The ``{data, error}`` envelope every endpoint returns."""

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_jsonable(item) for item in data]
    return data


def success_response(data: Any) -> dict[str, Any]:
    """Wrap a payload; models (and lists of them) are dumped in JSON mode."""
    return {"data": _jsonable(data), "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    return {"data": None, "error": {"code": code, "message": message}}


def envelope(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=success_response(data))


def error_json(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))
