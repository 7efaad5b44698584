"""Map the domain error taxonomy onto HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from marketplace.exceptions import GatewayError, InsufficientReserve, InvalidTransition

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InsufficientReserve)
    async def insufficient_reserve_handler(request: Request, exc: InsufficientReserve) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": exc.messages, "wait_minutes": exc.wait_minutes},
            headers={"Retry-After": str(exc.wait_minutes * 60)},
        )

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.messages})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.messages})

    @app.exception_handler(ObjectNotFoundError)
    async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.warning(
            "Payment gateway error",
            provider=exc.provider,
            error=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(status_code=502, content={"detail": exc.message, "provider": exc.provider})
