# barbershop/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import APP_ENV, RUN_CLEANUP_SCHEDULER
from .db import init_db
from .errors import BookingError
from .routers import admin_routes, auth_routes, blocked_dates_routes, public_routes, users_routes
from .services.cleanup import scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("passlib").setLevel(logging.ERROR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up (%s)...", APP_ENV)
    init_db()
    logger.info("Database ready")

    if RUN_CLEANUP_SCHEDULER:
        scheduler.start()
    else:
        logger.info("Cleanup scheduler disabled (RUN_CLEANUP_SCHEDULER != 1)")

    yield

    await scheduler.stop()
    logger.info("Application shutting down...")


app = FastAPI(title="Barbershop Booking API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.extra})


app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(public_routes.router)
app.include_router(admin_routes.router)
app.include_router(blocked_dates_routes.router)
