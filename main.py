# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.core.config import LOG_FORMAT, LOG_LEVEL
from storefront.core.db import AsyncSessionLocal, dispose_engine, init_models
from storefront.middleware.activity_logger import ActivityLoggerMiddleware
from storefront.routers import router as api_router

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    logger.info("Storefront backend started")
    yield
    await dispose_engine()


app = FastAPI(
    title="Storefront Orders API",
    description="Backend for delivery storefront pricing, checkout and notifications",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.session_factory = AsyncSessionLocal

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # adjust for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ActivityLoggerMiddleware)

# Health check endpoint
@app.get("/", tags=["Health"])
async def health_check():
    return {"status": "ok", "message": "Backend is running"}

# Register routers
app.include_router(api_router)
