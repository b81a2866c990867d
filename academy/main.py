"""Academy Payments - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ServerSelectionTimeoutError

from academy.api import auth, flutterwave, payments
from academy.config import settings
from academy.db import db_shutdown, db_startup
from academy.errors import PaymentsError
from academy.seed import seed_admin
from academy.services.gateway import FlutterwaveClient
from academy.services.notify import Notifier

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BROKER_PREFIXES = ("/api/ping", "/api/flutterwave")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db_startup()
        await seed_admin()
    except ServerSelectionTimeoutError as e:
        logger.error("MongoDB is not running. Start it with: docker compose up -d")
        raise RuntimeError("MongoDB connection failed. Start MongoDB (e.g. docker compose up -d).") from e
    app.state.gateway = FlutterwaveClient.from_settings()
    app.state.notifier = Notifier.from_settings()
    yield
    await app.state.gateway.close()
    await app.state.notifier.close()
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Academy payment lifecycle: invoices, reconciliation, reminders, mobile-money charges",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PaymentsError)
async def payments_exception_handler(request: Request, exc: PaymentsError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def open_broker_cors(request: Request, call_next):
    # The broker is called from any local origin; preflight never reaches the routes.
    if not request.url.path.startswith(BROKER_PREFIXES):
        return await call_next(request)
    if request.method == "OPTIONS":
        response = JSONResponse(status_code=200, content={})
    else:
        response = await call_next(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    return response


# API routes
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(flutterwave.router, prefix="/api", tags=["Gateway Broker"])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
