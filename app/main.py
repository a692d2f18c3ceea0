import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import admin, auth, bookings, counselors, payments, sessions, slots
from app.core.config import settings, _ENV_FILE
from app.core.errors import BookingError, PaymentGatewayError

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

PAYMENT_VERIFICATION_FAILED = "Payment verification failed"
PAYMENT_GATEWAY_FAILED = "Payment gateway request failed"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    if settings.razorpay_configured:
        logger.info("Razorpay: configured (key %s)", settings.razorpay_key_id)
    else:
        logger.warning(
            "Razorpay: NOT configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET in %s",
            _ENV_FILE,
        )
    if not settings.email_enabled:
        logger.warning("SMTP not configured; notifications and verification e-mails are disabled")
    yield


app = FastAPI(
    title="Unmuted API",
    description="Backend for Unmuted: peer counselling slots, payments and sessions",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Refresh-Token"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(counselors.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(payments.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Refresh-Token",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Render domain errors as {"detail", "code"}; integrity failures get a generic message."""
    headers = _cors_headers(request.headers.get("origin"))
    detail = exc.detail
    if not exc.public:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail)
        detail = PAYMENT_GATEWAY_FAILED if isinstance(exc, PaymentGatewayError) else PAYMENT_VERIFICATION_FAILED
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected errors; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
