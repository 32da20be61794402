from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from database import database
from routes import webhooks, config_check
from services.billing_config import get_environment, get_stripe_secret_key, get_webhook_secret, is_development_mode

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Stripe Subscription Webhooks"
SERVICE_VERSION = "1.0.0"


def _stripe_mode() -> str:
    stripe_key = get_stripe_secret_key()
    if not stripe_key:
        return "unknown"
    return "test" if stripe_key.startswith(("sk_test_", "rk_test_")) else "live"


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting %s (environment=%s)", SERVICE_NAME, get_environment())
    await database.connect()

    # Log mode and which secrets are present (never the values)
    stripe_mode = _stripe_mode()
    if stripe_mode == "unknown":
        logger.error("STRIPE_SECRET_KEY is not set. Stripe lookups will fail and events will be ignored.")
    else:
        logger.info("STRIPE_MODE = %s (from Stripe key prefix)", stripe_mode)
        if stripe_mode == "test" and get_environment() == "production":
            logger.warning("Stripe key looks like a test key but ENVIRONMENT=production. Verify key.")
    if not get_webhook_secret():
        if is_development_mode():
            logger.warning("STRIPE_WEBHOOK_SECRET not set - accepting UNSIGNED webhooks (development only)")
        else:
            logger.error("STRIPE_WEBHOOK_SECRET not set - all webhooks will be rejected")

    yield

    # Shutdown
    logger.info("Shutting down %s", SERVICE_NAME)
    await database.close()

# Create FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Reconciles Stripe billing events into per-company subscription records",
    version=SERVICE_VERSION,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhooks.router)
app.include_router(config_check.router)


def _banner():
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": get_environment(),
        "mode": "production" if get_environment() == "production" else "development",
        "stripe_mode": _stripe_mode(),
        "status": "operational"
    }


# Root endpoints
@app.get("/")
async def index():
    return _banner()


@app.get("/api")
async def root():
    return _banner()

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": get_environment(),
        "database": "connected" if database.is_connected() else "disconnected",
    }


# Version/build stamp for deployment verification (commit SHA set by CI/CD, e.g. GIT_COMMIT_SHA)
@app.get("/api/version")
async def version_info():
    return {
        "version": SERVICE_VERSION,
        "commit_sha": os.getenv("GIT_COMMIT_SHA", os.getenv("BUILD_SHA", "unknown")),
        "environment": get_environment(),
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8001")),
        reload=get_environment() == "development"
    )
