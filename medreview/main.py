from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medreview.api import audit, medical_reviews
from medreview.core.config import settings
from medreview.core.logging import get_logger, setup_logging
from medreview.db.session import init_db

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")
    init_db()
    yield
    logger.info(f"Stopping {settings.APP_NAME}")


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(medical_reviews.router)
app.include_router(audit.router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "event_dispatch": settings.EVENT_DISPATCH,
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
