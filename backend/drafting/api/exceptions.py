"""Request-level exceptions and body parsing for the API.

Domain errors (missing project, job, document or section) live in
``drafting.services.errors``; ``main`` maps both onto the envelope.
"""

from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


async def parse_body(request: Request, model_cls: type[ModelT]) -> ModelT:
    """Validate a JSON body, raising ``ValidationError`` on malformed input.

    An empty body validates as ``{}`` so all-default requests may omit it.
    """
    raw = await request.body()
    try:
        if not raw.strip():
            return model_cls.model_validate({})
        return model_cls.model_validate_json(raw)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e
