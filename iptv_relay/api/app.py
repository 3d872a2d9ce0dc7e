"""FastAPI application for the IPTV relay service."""

import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..infrastructure.dependencies import get_service_container
from .endpoints import channels, health

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service container on startup and stop channels on shutdown."""
    container = get_service_container()
    logger.info("🚀 IPTV relay started")

    yield  # Application runs here

    await container.shutdown()
    logger.info("👋 IPTV relay stopped")


# Create FastAPI application
app = FastAPI(
    title="IPTV Relay API",
    description="Relays live channels from stream providers to many consumers",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(channels.router)
