"""
Error taxonomy shared by the REST routes and the push channel.

Services raise these; the HTTP layer turns them into JSON responses through the
handlers registered in `register_error_handlers`, and the socket layer turns
them into an `error` event for the originating connection.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("tradedesk.errors")


class AppError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, **extra):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail, **self.extra}


class ValidationError(AppError):
    status_code = 400
    default_detail = "Validation failed"


class MissingScope(ValidationError):
    default_detail = "user_id, business_id, or session_id is required"


class InsufficientStock(ValidationError):
    def __init__(self, available_quantity: int):
        super().__init__(
            f"Only {available_quantity} units available",
            available_quantity=available_quantity,
        )


class Unauthorized(AppError):
    status_code = 401
    default_detail = "Access denied. No token provided."


class TokenExpired(Unauthorized):
    default_detail = "Token has expired."


class InvalidToken(Unauthorized):
    default_detail = "Invalid token."


class Forbidden(AppError):
    status_code = 403
    default_detail = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_detail = "Not found"


class Conflict(AppError):
    status_code = 409
    default_detail = "Already exists"


class Gone(AppError):
    status_code = 410
    default_detail = "No longer available"


class RateLimited(AppError):
    status_code = 429
    default_detail = "Too many requests, slow down"


def register_error_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(e.get("loc", [])), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
