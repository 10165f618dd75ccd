import os

from fastapi import FastAPI

from core.celery import celery_app
from core.config import settings
from core.db import init_db
from core.logging_config import setup_logging
from routes.admin import router as admin_router
from routes.cron import router as cron_router
from routes.orders import router as orders_router
from routes.payments import router as payments_router

setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Ensure tables exist (for dev/test; in prod use migrations)
init_db()

app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(admin_router)
app.include_router(cron_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@app.get("/celery-health")
async def celery_health_check():
    """Check Celery worker status"""
    try:
        inspect = celery_app.control.inspect()
        stats = inspect.stats()
        if stats:
            return {"status": "healthy", "workers": len(stats)}
        else:
            return {"status": "no_workers", "message": "No Celery workers running"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
    )
