"""API endpoints package for the admission gateway."""

from admission.app.api.metrics import router as metrics_router

__all__ = [
    "metrics_router",
]
