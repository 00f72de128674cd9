from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1 import api_router
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.middleware import RequestLoggingMiddleware
from app.schemas.error import ErrorResponse
from app.services.settlement import SettlementError, SettlementValidationError


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    tags_metadata = [
        {"name": "coupons", "description": "Coupon evaluation and promotion discovery"},
        {"name": "transactions", "description": "Checkout settlement"},
        {"name": "loyalty", "description": "Loyalty ledger and manual adjustments"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(SettlementValidationError)
    async def settlement_validation_handler(request: Request, exc: SettlementValidationError):
        payload = ErrorResponse(detail=str(exc), code="settlement_invalid")
        return JSONResponse(status_code=400, content=payload.model_dump())

    @app.exception_handler(SettlementError)
    async def settlement_error_handler(request: Request, exc: SettlementError):
        payload = ErrorResponse(
            detail=str(exc),
            code="settlement_conflict" if exc.retryable else "settlement_failed",
            stage=exc.stage.value,
            retryable=exc.retryable,
        )
        return JSONResponse(status_code=409 if exc.retryable else 500, content=payload.model_dump())

    return app


app = get_application()
