"""Main FastAPI application"""
import os
import logging
import logging.config
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv

# Import RichHandler for colored logging
from rich.logging import RichHandler

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False
        },
    },
    "loggers": {
        "uvicorn": {
             "handlers": ["default"],
             "level": "INFO",
             "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": { # Root logger for our application
            "handlers": ["default"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

load_dotenv()

# Routes read their settings from the environment at import time
from routes import router as api_router, limiter  # noqa: E402
from services.ledger import LedgerRegistry  # noqa: E402

MONGODB_URI = os.getenv("MONGODB_URI")
DB_NAME = os.getenv("DB_NAME", "finance_db")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

if not MONGODB_URI:
    logger.error("MONGODB_URI environment variable not set! Transactions will only be kept in memory.")

# Application state: database handles and the per-user ledgers
app_state = {"ledgers": LedgerRegistry()}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Connect to MongoDB
    app_state["db_client"] = None
    app_state["db"] = None
    if MONGODB_URI:
        logger.info("Connecting to MongoDB...")
        try:
            app_state["db_client"] = AsyncIOMotorClient(MONGODB_URI)
            app_state["db"] = app_state["db_client"][DB_NAME]
            await app_state["db_client"].admin.command('ping')
            logger.info(f"Successfully connected to MongoDB database: {DB_NAME}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}. Falling back to in-memory transactions.")
            if app_state["db_client"]:
                app_state["db_client"].close()
            app_state["db_client"] = None
            app_state["db"] = None

    yield # Application runs here

    # Shutdown: Close MongoDB connection
    if app_state.get("db_client"):
        logger.info("Closing MongoDB connection...")
        app_state["db_client"].close()
        logger.info("MongoDB connection closed.")

app = FastAPI(
    title="Fluxo Finance API",
    description="API for tracking income, expenses, installment plans and recurring series.",
    version="0.2.0",
    lifespan=lifespan
)

# --- Rate Limiter State and Handler ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api", tags=["api"])

# Make app state accessible via middleware
@app.middleware("http")
async def add_app_state_to_request(request: Request, call_next):
    """Adds the database handle and ledger registry to the request state."""
    request.state.db = app_state.get("db")
    request.state.ledgers = app_state.get("ledgers")
    response = await call_next(request)
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True
    )
