"""Health check and root endpoints."""

import structlog
from fastapi import APIRouter

from ..services import change_broker

# Initialize logger
logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint."""
    logger.info("root_endpoint_accessed")
    return {"message": "Welcome to Livenotes API"}


@router.get("/health")
async def health():
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "service": "livenotes-api",
        "change_streams": change_broker.stream_count(),
    }
