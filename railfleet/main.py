from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from railfleet.api.router import api_router
from railfleet.core.config import get_settings
from railfleet.core.db import init_database
from railfleet.core.errors import (
    ConcurrentModification,
    DuplicateActiveAssignment,
    DuplicateActiveEntry,
    DuplicateActiveRelease,
    DuplicateActiveRiderCar,
    DuplicateActiveScrap,
    DuplicateKey,
    DuplicateOpenPeriod,
    FleetStateError,
    InvalidTransition,
    NotFound,
    PrereqNotMet,
    StorageError,
)

logger = logging.getLogger(__name__)
settings = get_settings()

# Most specific class first; NoOpenPeriod is matched through NotFound
ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (DuplicateActiveAssignment, status.HTTP_409_CONFLICT),
    (DuplicateActiveEntry, status.HTTP_409_CONFLICT),
    (DuplicateOpenPeriod, status.HTTP_409_CONFLICT),
    (DuplicateActiveRiderCar, status.HTTP_409_CONFLICT),
    (DuplicateActiveScrap, status.HTTP_409_CONFLICT),
    (DuplicateActiveRelease, status.HTTP_409_CONFLICT),
    (DuplicateKey, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (PrereqNotMet, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: FleetStateError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("[LIFESPAN] Initializing database tables...")
    await init_database()
    logger.info("[LIFESPAN] Application startup complete")
    yield
    logger.info("[LIFESPAN] Shutdown complete")


app = FastAPI(
    title=settings.project_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With", "X-Actor-Id"],
)


@app.exception_handler(FleetStateError)
async def fleet_state_error_handler(_: Request, exc: FleetStateError) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content={"detail": exc.to_dict()})


app.include_router(api_router, prefix="/api")


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    return {"status": "ok", "environment": settings.environment}
