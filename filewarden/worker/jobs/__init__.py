"""filewarden job processors

- CompressJob: compress PDFs with Ghostscript
"""

from .base import BaseJob
from .compress import (
    CompressJob,
    CompressionError,
    GhostscriptNotFoundError,
    SourceNotFoundError,
)

__all__ = [
    'BaseJob',
    'CompressJob',
    'CompressionError',
    'GhostscriptNotFoundError',
    'SourceNotFoundError',
]
