from typing import Union
import os
import sys
import logging
from pathlib import Path

from filewarden.worker.jobs.base import BaseJob

logger = logging.getLogger(__name__)

# Ghostscript -dPDFSETTINGS presets
QUALITY_PRESETS = {
    "low": "/screen",     # smallest, lowest fidelity
    "medium": "/ebook",   # balanced
    "high": "/printer",   # largest, highest fidelity
}
DEFAULT_QUALITY = "medium"


class CompressionError(RuntimeError):
    """Compression could not produce an output file"""


class SourceNotFoundError(CompressionError):
    """The file to compress does not exist"""


class GhostscriptNotFoundError(CompressionError):
    """The Ghostscript executable could not be spawned"""


def ghostscript_command() -> str:
    if sys.platform == "win32":
        return "gswin64c"
    return "gs"


class CompressJob(BaseJob):
    """Job processor for compressing PDFs with Ghostscript"""

    def build_command(self, source: str, destination: str, quality: str) -> list:
        preset = QUALITY_PRESETS.get(str(quality), QUALITY_PRESETS[DEFAULT_QUALITY])
        return [
            ghostscript_command(),
            "-sDEVICE=pdfwrite",
            "-dCompatibilityLevel=1.4",
            f"-dPDFSETTINGS={preset}",
            "-dNOPAUSE",
            "-dQUIET",
            "-dBATCH",
            f"-sOutputFile={destination}",
            source,
        ]

    async def compress(self, source_path: Union[str, Path], destination_path: Union[str, Path],
                       quality: str = DEFAULT_QUALITY) -> Path:
        """
        Compress source_path into destination_path.

        Raises:
            SourceNotFoundError: source does not exist (checked before spawning)
            GhostscriptNotFoundError: Ghostscript is not installed
            CompressionError: Ghostscript exited non-zero
        """
        source = str(source_path)
        destination = str(destination_path)

        if not os.path.exists(source):
            raise SourceNotFoundError(f"Source file not found: {source}")

        cmd = self.build_command(source, destination, quality)
        logger.info(f"Compressing {source} to {destination} ({quality})")

        try:
            returncode, _, stderr = await self.run_command(cmd)
        except OSError as e:
            raise GhostscriptNotFoundError(
                f"Failed to spawn Ghostscript ({cmd[0]}): {e}. "
                "Please install Ghostscript (e.g. brew install ghostscript or apt install ghostscript)"
            ) from e

        if returncode != 0:
            error_msg = f"Ghostscript failed with code {returncode}: {stderr.strip()}"
            logger.error(error_msg)
            raise CompressionError(error_msg)

        return Path(destination)
