"""API endpoints package for the annotation service."""

from annotator.app.api.annotations import router as annotations_router
from annotator.app.api.images import router as images_router

__all__ = [
    "annotations_router",
    "images_router",
]
