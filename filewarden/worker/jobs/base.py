from typing import List, Optional, Tuple
import logging
import asyncio

logger = logging.getLogger(__name__)


class BaseJob:
    """Base class for jobs that shell out to an external tool"""

    async def run_command(self, cmd: List[str], cwd: Optional[str] = None) -> Tuple[int, str, str]:
        """
        Run a command and return exit code, stdout, stderr.

        Raises:
            FileNotFoundError / OSError: if the executable cannot be spawned
        """
        logger.debug(f"Running {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd
        )

        stdout, stderr = await process.communicate()

        return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")
