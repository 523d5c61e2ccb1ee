"""Health check endpoints."""

from fastapi import APIRouter

from scout_engine import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": "scout-engine"}


@router.get("/")
async def root():
    """API root."""
    return {
        "name": "Scout Engine Worker API",
        "version": __version__,
        "docs": "/docs",
    }
