"""
Kader Learn API application.

Builds the FastAPI app: logging, CORS, request ids, the response envelope
for every error, and the versioned API router.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse, Response
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY, HTTP_500_INTERNAL_SERVER_ERROR

from kaderlearn.core.config import settings
from kaderlearn.core.database import DatabaseManager, check_database_connection
from kaderlearn.core.exceptions import AppError
from kaderlearn.core.logger import clear_request_id, configure_logging, set_request_id
from kaderlearn.core.responses import error_response, success_response
from kaderlearn.routers import api_router


logger = configure_logging()

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    DatabaseManager.create_all_tables()
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)
    yield
    logger.info("%s stopped", settings.PROJECT_NAME)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logger(request: Request, call_next):
    rid = set_request_id(request.headers.get("x-request-id"))
    try:
        logger.info("request start method=%s path=%s client=%s", request.method, request.url.path, request.client)
        response: Response = await call_next(request)
        logger.info("request end status=%s method=%s path=%s", response.status_code, request.method, request.url.path)
        response.headers["x-request-id"] = rid
        return response
    except Exception:
        logger.exception("request error method=%s path=%s", request.method, request.url.path)
        raise
    finally:
        clear_request_id()


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app error code=%s method=%s path=%s message=%s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.warning("app error code=%s method=%s path=%s message=%s", exc.code, request.method, request.url.path, exc.message)
    return error_response(exc.code, exc.message, exc.status_code, exc.data)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # Log server-side errors with stack traces; client errors as warnings.
    if exc.status_code >= 500:
        logger.exception("http error status=%s method=%s path=%s detail=%s", exc.status_code, request.method, request.url.path, exc.detail)
    else:
        logger.warning("http error status=%s method=%s path=%s detail=%s", exc.status_code, request.method, request.url.path, exc.detail)
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return error_response(code, str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("validation error method=%s path=%s errors=%s", request.method, request.url.path, exc.errors())
    return error_response(
        "VALIDATION_ERROR",
        "Request validation failed",
        HTTP_422_UNPROCESSABLE_ENTITY,
        [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()],
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak internal exception details to clients.
    logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
    return error_response("INTERNAL_ERROR", "Internal Server Error", HTTP_500_INTERNAL_SERVER_ERROR)


@app.get("/health")
def health_check():
    database_ok = check_database_connection()
    return success_response("HEALTHY", f"{settings.PROJECT_NAME} is healthy", {
        "version": settings.VERSION,
        "database": "connected" if database_ok else "unavailable",
    })


app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    uvicorn.run("kaderlearn.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
