from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from worktime.core.config import settings
from worktime.core.database import engine
from worktime.api.v1.api import api_router
from worktime.utils.date_time import utc_now
import logging

logger = logging.getLogger(__name__)

# Create FastAPI app
app_config = {
    "title": "Worktime Attendance Service",
    "description": "Clock-in/clock-out tracking with shift-aware daily attendance",
    "version": "1.0.0",
}

app = FastAPI(**app_config)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS
)

# Include routers
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
async def root():
    return {
        "message": "⏱️ Worktime Attendance Service",
        "status": "active",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
async def health_check():
    database = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        database = "unavailable"
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "timestamp": utc_now().isoformat(),
        "timezone": settings.TIMEZONE,
        "components": {
            "database": database,
        }
    }

def run_http():
    """Run HTTP server on port 9106"""
    import uvicorn
    from worktime.core.logging_config import setup_logging
    setup_logging()
    logger.info("🚀 Starting HTTP server on port 9106...")
    uvicorn.run(
        "main:app",  # Use string import
        host="0.0.0.0",
        port=9106,
        reload=False,
        log_config=None
    )

if __name__ == "__main__":
    run_http()
