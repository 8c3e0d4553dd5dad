"""
Action executor - runs a rule's actions strictly in sequence
"""
import os
import shutil
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from filewarden.schemas.rules import Action, ActionResult, ActionStatus, ScreenshotMetadata
from filewarden.services.config_service import ConfigService
from filewarden.worker.jobs.compress import CompressJob, DEFAULT_QUALITY
from .models import RuleContext
from .resolver import resolve_destination

logger = logging.getLogger(__name__)


class RulesEngine:
    """
    Executes action chains.

    Each action's output path becomes the next action's input. A failed action
    is recorded and the chain continues from the last successfully produced
    path rather than aborting.
    """

    def __init__(self, config_service: Optional[ConfigService] = None,
                 compress_job: Optional[CompressJob] = None):
        self.config_service = config_service or ConfigService()
        self.compress_job = compress_job or CompressJob()

    async def execute_actions(
        self,
        actions: List[Action],
        source_path: Union[str, Path],
        dry_run: bool = False,
        metadata: Optional[ScreenshotMetadata] = None,
    ) -> List[ActionResult]:
        """Execute actions in order, chaining successful outputs"""
        ctx = RuleContext.for_file(source_path, dry_run=dry_run, metadata=metadata)

        results = []
        for idx, action in enumerate(actions):
            logger.debug(f"Step {idx+1}/{len(actions)}: {action.type} on {ctx.active.path}")
            result = await self.execute_action(action, ctx)
            results.append(result)

            if result.success and result.destination_path:
                ctx.advance(result.destination_path)
            elif not result.success:
                logger.warning(f"Step {idx+1} failed: {action.type} - {result.error}; "
                               f"continuing with {ctx.active.path}")

        if len(ctx.trail) > 1:
            logger.debug(f"{ctx.original.name}: " + " → ".join(str(p) for p in ctx.trail))
        return results

    async def execute_action(self, action: Action, ctx: RuleContext) -> ActionResult:
        """Resolve the destination for one action and perform it"""
        source = ctx.active.path

        dispatch = {
            "move": self._action_move,
            "rename": self._action_move,
            "copy": self._action_copy,
            "compress": self._action_compress,
        }

        handler = dispatch.get(action.type)
        if not handler:
            logger.warning(f"Unknown action type: {action.type}")
            return self._failed(action, source, f"Unknown action: {action.type}")

        try:
            # Configuration is read fresh for every action
            config = await self.config_service.load_config()
            target = resolve_destination(
                action,
                source,
                config.paths,
                metadata=ctx.metadata,
                dry_run=ctx.dry_run,
            )

            if not ctx.dry_run:
                await handler(action, source, target)
            else:
                logger.info(f"[dry-run] {action.type}: {source} → {target}")

            return ActionResult(
                action=action,
                status=ActionStatus.success,
                source_path=str(source),
                destination_path=str(target),
            )
        except Exception as e:
            logger.error(f"Failed to {action.type} {source}: {e}")
            return self._failed(action, source, str(e))

    async def _action_move(self, action: Action, source: Path, target: Path):
        """Move/rename - atomic rename of the active file"""
        os.replace(str(source), str(target))
        logger.info(f"Moved: {source} → {target}")

    async def _action_copy(self, action: Action, source: Path, target: Path):
        """Copy - byte-for-byte duplicate, source left in place"""
        shutil.copyfile(str(source), str(target))
        logger.info(f"Copied: {source} → {target}")

    async def _action_compress(self, action: Action, source: Path, target: Path):
        """Compress - awaits the Ghostscript process"""
        settings = action.config.compress
        quality = settings.quality if settings else DEFAULT_QUALITY
        await self.compress_job.compress(source, target, quality)
        logger.info(f"Compressed: {source} → {target}")

    @staticmethod
    def _failed(action: Action, source: Path, error: str) -> ActionResult:
        return ActionResult(
            action=action,
            status=ActionStatus.failed,
            source_path=str(source),
            error=error,
        )


def summarize(results: List[ActionResult]) -> Dict[str, Optional[str]]:
    """Overall status and final destination for a list of action results"""
    successes = [r for r in results if r.success]
    return {
        "status": "completed" if len(successes) == len(results) else "failed",
        "destination_path": successes[-1].destination_path if successes else None,
    }
