# library_booking/main.py
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException, Request, status as fastapi_status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from library_booking.api.deps import get_store, set_store
from library_booking.api.v1.api import api_router_v1
from library_booking.core.config import RECONCILE_INTERVAL_MINUTES, SCHEDULER_TIMEZONE, setup_logging
from library_booking.core.errors import BookingError
from library_booking.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from library_booking.db.database import build_store
from library_booking.middleware.authentication import AuthMiddleware
from library_booking.middleware.logging import RequestLoggingMiddleware
from library_booking.repositories.mongo import MongoBookingStore
from library_booking.scheduler.jobs import reconcile_resource_statuses

# --- Scheduler Instance ---
scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application startup...")
    store = await build_store()
    set_store(store)
    logger.info(f"Booking store ready: {type(store).__name__}")

    if RECONCILE_INTERVAL_MINUTES > 0:
        scheduler.add_job(
            reconcile_resource_statuses,
            trigger=IntervalTrigger(minutes=RECONCILE_INTERVAL_MINUTES),
            id="reconcile_resource_statuses_job",
            name="Reconcile Resource Statuses",
            replace_existing=True,
            misfire_grace_time=60 * RECONCILE_INTERVAL_MINUTES,
        )
        scheduler.start()
        logger.info(f"Scheduler started with timezone: {scheduler.timezone}")
    yield
    logger.info("Application shutdown...")
    if scheduler.running:
        scheduler.shutdown()
    await store.close()
    set_store(None)


app = FastAPI(
    title="Library Booking API",
    description="Book loans and room reservations with conflict-free scheduling.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Error Handling ---
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)


@app.exception_handler(BookingError)
async def booking_exception_handler(request: Request, exc: BookingError):
    logger.info(f"Booking rejected: {exc.kind} ({exc.status_code}) {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation Error: {exc.errors()}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation Error", "errors": jsonable_errors(exc)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled Exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred."},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


# --- Middleware ---
app.add_middleware(AuthMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.state.limiter = get_rate_limiter()
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(api_router_v1)


@app.get("/")
async def read_root():
    return {"message": "Welcome to the Library Booking API!"}


@app.get("/health")
async def health_check():
    store = get_store()
    if isinstance(store, MongoBookingStore):
        try:
            await store.client.admin.command("ping")
        except PyMongoError:
            raise HTTPException(status_code=503, detail="MongoDB connection failed.")
    return {"status": "ok", "store": type(store).__name__}
