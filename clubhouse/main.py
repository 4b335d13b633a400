from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from clubhouse.database import Base, SessionLocal, engine
import clubhouse.models  # noqa: F401  # Ensure all SQLAlchemy models are registered
from clubhouse.routers import auth as auth_router
from clubhouse.routers import clubs as clubs_router
from clubhouse.routers import meetings as meetings_router
from clubhouse.routers import realtime as realtime_router
from clubhouse.services.errors import MeetingError
from clubhouse.utils.logging_config import setup_logging
from clubhouse.utils.websocket_manager import websocket_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Base.metadata.create_all(bind=engine)
    websocket_manager.start()
    logging.getLogger("clubhouse").info("Database initialized; realtime rooms ready.")
    yield
    await websocket_manager.shutdown()
    logging.getLogger("clubhouse").info("Application shutdown.")


app = FastAPI(
    title="Clubhouse",
    description="Club meetings with live participants and chat",
    lifespan=lifespan,
)


async def audit_action_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    method = request.method.upper()
    path = request.url.path
    if method not in {"POST", "PUT", "PATCH", "DELETE"} or not path.startswith("/api/"):
        return await call_next(request)

    response = await call_next(request)

    # Set by get_current_active_user during the request.
    user = getattr(request.state, "user", None)
    if user is None:
        return response
    logging.getLogger("audit").info(
        "Audit action: %s",
        {
            "method": method,
            "path": path,
            "status": response.status_code,
            "user": getattr(user, "login", None) or "unknown",
        },
    )
    return response


app.add_middleware(BaseHTTPMiddleware, dispatch=audit_action_middleware)

app.include_router(auth_router.router)
app.include_router(clubs_router.router)
app.include_router(meetings_router.router)
app.include_router(realtime_router.router)


@app.exception_handler(MeetingError)
async def meeting_error_handler(request: Request, exc: MeetingError):
    logging.getLogger("clubhouse").info(
        "%s %s rejected (%s): %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger = logging.getLogger("clubhouse")
    logger.error(f"Global exception: {str(exc)}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error. Please check logs."},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger = logging.getLogger("clubhouse")
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} error: {exc.detail}")
    else:
        logger.info(f"HTTP {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Report only the messages so the body is always serializable.
    error_messages = [err["msg"] for err in exc.errors()]
    logging.getLogger("clubhouse").warning(f"Validation error: {error_messages}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": error_messages},
    )


@app.get("/health", tags=["healthcheck"])
async def health_check():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logging.getLogger("clubhouse").error("Health check database error: %s", e)
        raise HTTPException(status_code=503, detail="Database connection failed")
    finally:
        db.close()
    return {"status": "healthy", "database": "connected"}
