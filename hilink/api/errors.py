import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..core.errors import (
    InsufficientStock,
    InvalidSignature,
    NotFound,
    PaymentProviderError,
    PersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def insufficient_stock_handler(request: Request, exc: InsufficientStock) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "available": exc.available},
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
    )


async def invalid_signature_handler(request: Request, exc: InvalidSignature) -> JSONResponse:
    logger.warning("Rejected payment notification", extra={"path": request.url.path})
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


async def payment_provider_error_handler(
    request: Request, exc: PaymentProviderError
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(InsufficientStock, insufficient_stock_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(InvalidSignature, invalid_signature_handler)
    app.add_exception_handler(PaymentProviderError, payment_provider_error_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)
