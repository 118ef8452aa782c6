#main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.errors import WorkflowError
from db import close_engine
from middleware import RequestContextMiddleware
from routes.admin_disputes import router as admin_disputes_router
from routes.admin_kyc import router as admin_kyc_router
from routes.admin_payouts import router as admin_payouts_router
from routes.auth import router as auth_router
from routes.bookings import router as bookings_router
from routes.health import router as health_router
from routes.kyc import router as kyc_router
from routes.organizer_bookings import router as organizer_bookings_router
from routes.profile import router as profile_router
from routes.referrals import router as referrals_router
from routes.talent_bookings import router as talent_bookings_router
from services.observability import configure_logging
from settings import settings

configure_logging()
logger = logging.getLogger("gigsec.api")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("startup payout_provider=%s", settings.PAYOUT_PROVIDER_MODE)
    yield
    close_engine()


app = FastAPI(title="GigSec API", version="1.0.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)

# -----------------------------
# ROUTERS
# -----------------------------

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(bookings_router)
app.include_router(talent_bookings_router)
app.include_router(organizer_bookings_router)
app.include_router(admin_disputes_router)
app.include_router(admin_payouts_router)
app.include_router(admin_kyc_router)
app.include_router(kyc_router)
app.include_router(profile_router)
app.include_router(referrals_router)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.http_status >= 500:
        logger.warning("workflow error path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
