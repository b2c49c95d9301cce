import logging

from fastapi import FastAPI

from receipt_engine import __version__
from receipt_engine.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.APP_NAME,
    description="Receipt data extraction from recognized text",
    version=__version__,
    debug=settings.DEBUG,
)


@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}

# Import routers
from receipt_engine.routers import extract, review

# Include routers
app.include_router(extract.router)
app.include_router(review.router)
