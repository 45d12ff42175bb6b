"""
GoSafe marketplace FastAPI application.

Rides, parcel deliveries and home-service jobs share one request/bid/match
lifecycle. All routers are mounted with /api/v1 prefix.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.database import engine
from marketplace.routers import bids, providers, ratings, requests, users
from marketplace.schemas.common import HealthResponse
from marketplace.services.errors import MarketplaceError, UnauthorizedError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup ----
    logger.info("Starting GoSafe marketplace API...")
    yield
    # ---- Shutdown ----
    await engine.dispose()
    logger.info("GoSafe marketplace API stopped.")


app = FastAPI(
    title="GoSafe Marketplace API",
    description=(
        "Request / bid / match lifecycle for rides, parcel deliveries "
        "and home-service jobs."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers,
    )


# ---- Register routers ----
_PREFIX = "/api/v1"

app.include_router(requests.router, prefix=_PREFIX)
app.include_router(bids.router, prefix=_PREFIX)
app.include_router(providers.router, prefix=_PREFIX)
app.include_router(ratings.router, prefix=_PREFIX)
app.include_router(users.router, prefix=_PREFIX)


@app.get("/health", response_model=HealthResponse, tags=["admin"])
async def health_check():
    return HealthResponse(status="ok", service="gosafe-marketplace")


@app.get("/", tags=["admin"])
async def root():
    return {
        "service": "GoSafe Marketplace API",
        "docs": "/docs",
        "version": "0.1.0",
    }
