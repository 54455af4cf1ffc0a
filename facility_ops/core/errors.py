from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class IsolationError(Exception):
    """Structured refusal raised by the third-party isolation layer.

    Rendered as ``{"error", "message", "code"}``. Messages are user-facing
    and never carry internal identifiers.
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code

    def to_dict(self) -> dict:
        body = {"error": self.error, "message": self.message}
        if self.code:
            body["code"] = self.code
        return body


class CleanupError(RuntimeError):
    pass


def isolation_error_handler(request: Request, exc: IsolationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
