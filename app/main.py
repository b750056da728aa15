import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.locks import build_event_locks
from app.core.logging_config import setup_logging
from app.database.db import Base, engine
from app.models import books, events  # noqa: F401  register tables with Base.metadata
from app.routes import bookings as booking_routes
from app.routes import events as event_routes
from app.schemas.common import ErrorEnvelope
from app.services.errors import LedgerError
from app.stores.memory import MemoryStore

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.event_locks = build_event_locks(settings)
app.state.event_delete_mode = settings.EVENT_DELETE_MODE

if settings.STORE_BACKEND == "memory":
    app.state.memory_store = MemoryStore()
else:
    app.state.memory_store = None
    # Create all tables (in production, use migrations such as Alembic)
    Base.metadata.create_all(bind=engine)

logger.info(
    "%s starting: store=%s locks=%s delete_mode=%s",
    settings.PROJECT_NAME,
    settings.STORE_BACKEND,
    settings.LOCK_BACKEND,
    settings.EVENT_DELETE_MODE,
)


def _failure(status_code: int, message: str, error=None) -> JSONResponse:
    body = ErrorEnvelope(message=message, error=error).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        error = None if settings.is_production else str(exc.__cause__ or exc)
        return _failure(exc.status_code, exc.message, error)
    return _failure(exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = "Invalid request data" + (f": {', '.join(fields)}" if fields else "")
    errors = [{"loc": err.get("loc"), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()]
    return _failure(status.HTTP_400_BAD_REQUEST, message, errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return _failure(exc.status_code, "Endpoint not found. Please check the API documentation at /")
    return _failure(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _failure(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Something went wrong!",
        None if settings.is_production else str(exc),
    )


@app.get("/", tags=["meta"])
def index():
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "endpoints": {
            "events": {
                "GET /events": "Get all active events",
                "POST /events/add": "Create new event",
                "GET /event/{id}": "Get event by ID",
                "PUT /event/{id}": "Update event",
                "DELETE /event/{id}": "Cancel event",
                "GET /event/{id}/stats": "Capacity statistics for an event",
            },
            "bookings": {
                "GET /api/bookings": "Get all confirmed bookings",
                "POST /api/bookings": "Create new booking",
                "GET /api/bookings/{id}": "Get booking by ID",
                "PUT /api/bookings/{id}": "Update booking",
                "DELETE /api/bookings/{id}": "Cancel booking",
            },
        },
    }


# Include the routers
app.include_router(event_routes.router)
app.include_router(booking_routes.router)
