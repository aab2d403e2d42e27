import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from phishdrill.config import configure_logging, settings
from phishdrill.api import routes

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    logger.info(f"🚀 Starting {settings.APP_NAME} API...")
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    if settings.LEDGER_BACKEND == "sql":
        from phishdrill.database import init_db
        init_db()
    logger.info(f"✓ Inbox: {settings.INBOX_FILE}, ledger backend: {settings.LEDGER_BACKEND}")
    yield
    # Shutdown
    logger.info(f"👋 Shutting down {settings.APP_NAME} API...")

app = FastAPI(
    title=settings.APP_NAME,
    description="Status and reporting surface for the phishing-awareness drill",
    version=settings.VERSION,
    lifespan=lifespan
)

# Dashboard origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Drill"])


@app.get("/")
def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.VERSION,
        "ledgerBackend": settings.LEDGER_BACKEND,
        "docs": "/docs"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("phishdrill.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
