import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from storefront.api import account, auth, orders
from storefront.core.config import get_settings
from storefront.core.errors import RateLimited, StorefrontError, Unauthenticated

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("storefront")

STATUS_BY_CATEGORY = {
    "config": status.HTTP_503_SERVICE_UNAVAILABLE,
    "validation": status.HTTP_400_BAD_REQUEST,
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "storage": status.HTTP_503_SERVICE_UNAVAILABLE,
}

app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Storefront accounts, saved addresses and order placement",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_body(category: str, message: str, reason: str | None = None, **extra) -> dict:
    body = {"error": message, "code": category}
    if reason:
        body["reason"] = reason
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    code = STATUS_BY_CATEGORY.get(exc.category, status.HTTP_500_INTERNAL_SERVER_ERROR)
    reason = getattr(exc.reason, "value", exc.reason)
    extra = {"field": exc.field}
    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
        if exc.token_failure is not None:
            extra["detail"] = exc.token_failure.value
    elif isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    if code >= 500:
        logger.warning("%s %s failed: %r", request.method, request.url.path, exc)
    response = JSONResponse(
        status_code=code,
        content=error_body(exc.category, exc.message, reason, **extra),
        headers=headers,
    )
    if isinstance(exc, Unauthenticated) and exc.clear_cookie:
        response.delete_cookie(exc.clear_cookie, path="/auth")
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = None
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ())[1:]) or None
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("validation", "Invalid request.", "malformedRequest", field=field),
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Unhandled storage error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body("storage", "Unable to process the request right now. Please try again."),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal", "Something went wrong."),
    )


# Routers
app.include_router(auth.router)
app.include_router(account.router)
app.include_router(orders.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "version": "0.1.0"}
