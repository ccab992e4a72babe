"""
FastAPI backend for the Roadwatch citizen traffic-violation reporting app.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roadwatch.routes import register_routes
from roadwatch.routes._shared import USE_DATABASE, USE_CELERY, get_storage
from roadwatch.services import ReportingError, get_sms_dispatcher

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    if USE_DATABASE:
        from roadwatch.database import get_pool, apply_schema
        await get_pool()
        logger.info("Database connection pool initialized")
        await apply_schema()
    else:
        logger.info("Database disabled; using in-memory storage")

    if USE_CELERY:
        logger.info("Celery mode enabled; SMS goes through the notifications queue")

    yield

    # Let detached SMS sends finish before the loop goes away
    await get_sms_dispatcher().drain()

    await get_storage().close()
    if USE_DATABASE:
        logger.info("Database connection pool closed")


app = FastAPI(
    title="Roadwatch API",
    description="Citizen traffic-violation reporting with duplicate detection and rewards",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReportingError)
async def reporting_error_handler(request: Request, exc: ReportingError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_code},
    )


register_routes(app)


# =====================
# Health Check
# =====================

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    status = {"status": "healthy", "database": "disabled"}

    if USE_DATABASE:
        try:
            from roadwatch.database import check_connection
            db_healthy = await check_connection()
            status["database"] = "connected" if db_healthy else "error"
        except Exception as e:
            status["database"] = f"error: {str(e)}"

    return status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
