"""
Media helpers for digquest-sync: pre-upload image optimization.
"""

from digquest_sync.media.optimizer import (
    ImageFile,
    ImageOptimizer,
    OptimizeOptions,
    optimize_image_for_upload,
)

__all__ = [
    "ImageFile",
    "ImageOptimizer",
    "OptimizeOptions",
    "optimize_image_for_upload",
]
