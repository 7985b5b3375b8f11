"""Share package export/import."""

from .package import (
    ExportResult,
    ImportFilePreview,
    ImportPreview,
    ImportResult,
    ImportStatus,
    SharePackageManager,
)
from .sanitizer import Sanitizer

__all__ = [
    "ExportResult", "ImportFilePreview", "ImportPreview", "ImportResult",
    "ImportStatus", "SharePackageManager", "Sanitizer",
]
