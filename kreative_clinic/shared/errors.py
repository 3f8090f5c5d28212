"""Field-keyed validation errors (422)"""

from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class FieldValidationError(Exception):
    """Raised by services when one or more request fields fail a business rule"""

    def __init__(self, errors: dict[str, list[str]], message: Optional[str] = None, status_code: int = 422):
        self.errors = errors
        self.message = message or first_message(errors)
        self.status_code = status_code
        super().__init__(self.message)

    @classmethod
    def single(cls, field: str, message: str) -> "FieldValidationError":
        return cls({field: [message]}, message)


def first_message(errors: dict[str, list[str]]) -> str:
    for messages in errors.values():
        if messages:
            return messages[0]
    return "The given data was invalid."


def errors_from_request_validation(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = loc[-1] if loc else "request"
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)
    return errors


async def field_validation_exception_handler(request: Request, exc: FieldValidationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "errors": exc.errors},
    )
