"""
Domain errors shared by the product and order services.

Services raise these; routers never build HTTP errors for business rules
themselves. Each error carries a machine-readable ``code`` and the HTTP
status the exception handler should answer with.
"""
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    """Malformed or inconsistent request data. Raised before any mutation."""
    code = "VALIDATION_ERROR"


class CustomerNotFound(DomainError):
    code = "CUSTOMER_NOT_FOUND"


class ProductNotFound(DomainError):
    code = "PRODUCT_NOT_FOUND"


class ProductInactive(DomainError):
    code = "PRODUCT_INACTIVE"


class InsufficientStock(DomainError):
    code = "INSUFFICIENT_STOCK"
    status_code = status.HTTP_409_CONFLICT


class InvalidStockAdjustment(DomainError):
    code = "INVALID_STOCK"


class OrderNotFound(DomainError):
    code = "ORDER_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStatusTransition(DomainError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = status.HTTP_409_CONFLICT


class OrderNotEditable(DomainError):
    code = "ORDER_NOT_EDITABLE"
    status_code = status.HTTP_409_CONFLICT


class ConcurrentOrderUpdate(DomainError):
    """Another request changed the order between our read and our write."""
    code = "CONCURRENT_ORDER_UPDATE"
    status_code = status.HTTP_409_CONFLICT


def error_body(code: str, message: str, details=None) -> dict:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


async def domain_error_handler(request: Request, exc: DomainError):
    logger.info(
        "domain_error",
        code=exc.code,
        message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
    )


def register_exception_handlers(app: FastAPI, status_overrides: dict | None = None):
    """Install the DomainError handler on a service app.

    ``status_overrides`` lets a service remap an error's status code, e.g. the
    product service answers ProductNotFound with 404 instead of 400.
    """
    overrides = status_overrides or {}

    async def handler(request: Request, exc: DomainError):
        response = await domain_error_handler(request, exc)
        if type(exc) in overrides:
            response.status_code = overrides[type(exc)]
        return response

    app.add_exception_handler(DomainError, handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed payloads answer like domain validation failures
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", "Validation failed", jsonable_encoder(exc.errors())),
    )
