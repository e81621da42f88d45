"""FastAPI application entry point."""
import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ledgerboard.api.routes import router
from ledgerboard.database import init_db

# Configure structured logging at startup
logging.config.dictConfig({
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"],
    },
    "loggers": {
        "httpx": {"level": "WARNING"},
    },
})

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Ledgerboard starting up, initializing database tables")
    try:
        init_db()
        logger.info("Database ready")
    except Exception as e:
        # Don't block startup: server must bind so /health passes
        logger.warning("Database init failed (server will start anyway): %s", e)
    yield
    logger.info("Ledgerboard shutting down")


app = FastAPI(
    title="Ledgerboard",
    description="Multi-tenant accounting dashboard backed by the SIIGO API.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router, prefix="/api", tags=["api"])


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    """Invalid or missing parameters are a 400 for dashboard clients."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/health")
def health():
    return {"status": "ok"}
