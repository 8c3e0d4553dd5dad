"""Routes settled file events to the highest-priority matching rule"""

import os
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from filewarden.schemas.rules import Rule, RuleRun, RunStatus, ScreenshotMetadata
from filewarden.services.metadata_service import MetadataProvider
from filewarden.worker.rules.engine import RulesEngine, summarize
from filewarden.worker.rules.selector import select_rules
from filewarden.worker.rules.template import expand_template

logger = logging.getLogger(__name__)

# Trigger types that react to each watcher event kind
EVENT_TRIGGERS = {
    "created": {"file_created", "screenshot"},
    "modified": {"file_modified"},
}


def normalize_path(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


def is_screenshot_rule(rule: Rule) -> bool:
    return "screenshot" in rule.tags or rule.trigger.type == "screenshot"


def group_rules_by_folder(rules: List[Rule], path_vars: Mapping[str, str]) -> Dict[str, List[Rule]]:
    """Enabled rules keyed by their expanded, absolute trigger folder"""
    folders: Dict[str, List[Rule]] = {}
    for rule in rules:
        if not rule.enabled or not rule.trigger.folder:
            continue
        folder = os.path.abspath(expand_template(rule.trigger.folder, path_vars))
        folders.setdefault(folder, []).append(rule)
    return folders


class InFlightPaths:
    """
    Paths currently being handled.

    Lives on the event loop: try_acquire has no await between the membership
    test and the insert, so it is atomic with respect to other tasks.
    """

    def __init__(self):
        self._paths: Set[str] = set()

    def __contains__(self, path: str) -> bool:
        return path in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def try_acquire(self, path: str) -> bool:
        if path in self._paths:
            return False
        self._paths.add(path)
        return True

    def release(self, path: str):
        self._paths.discard(path)

    def release_later(self, path: str, delay: float):
        if delay <= 0:
            self.release(path)
            return
        asyncio.get_running_loop().call_later(delay, self.release, path)


class EventDispatcher:
    """
    Consumes (path, kind) notifications and executes at most one rule per file.

    A path stays in flight from receipt until settle_delay seconds after its
    rule finished, so bursts of events for the same file collapse into one
    execution. Distinct paths are handled concurrently.
    """

    def __init__(
        self,
        engine: RulesEngine,
        store=None,
        metadata_provider: Optional[MetadataProvider] = None,
        rules_by_folder: Optional[Dict[str, List[Rule]]] = None,
        dry_run: bool = False,
        settle_delay: float = 1.0,
    ):
        self.engine = engine
        self.store = store
        self.metadata_provider = metadata_provider or MetadataProvider()
        self.rules_by_folder = {
            os.path.abspath(folder): rules for folder, rules in (rules_by_folder or {}).items()
        }
        self.dry_run = dry_run
        self.settle_delay = settle_delay
        self.in_flight = InFlightPaths()
        self.accepting = True
        self._tasks: Set[asyncio.Task] = set()

    def rules_for_path(self, file_path: str) -> List[Rule]:
        """Rules whose watched folder contains the file"""
        path = os.path.abspath(file_path)
        rules: List[Rule] = []
        for folder, folder_rules in self.rules_by_folder.items():
            if path == folder or path.startswith(folder.rstrip(os.sep) + os.sep):
                rules.extend(folder_rules)
        return rules

    def submit(self, file_path: str, kind: str) -> Optional[asyncio.Task]:
        """Schedule handling of a notification on the running loop"""
        if not self.accepting:
            logger.debug(f"Not accepting events, dropping {file_path}")
            return None
        task = asyncio.create_task(self.handle_event(file_path, kind))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_event(self, file_path: str, kind: str) -> Optional[RuleRun]:
        """Run the highest-priority matching rule for a file event"""
        key = normalize_path(file_path)
        if not self.in_flight.try_acquire(key):
            logger.debug(f"Already handling {file_path}, skipping duplicate {kind} event")
            return None

        try:
            triggers = EVENT_TRIGGERS.get(kind, set())
            candidates = [r for r in self.rules_for_path(file_path) if r.trigger.type in triggers]
            matching = select_rules(candidates, file_path)
            if not matching:
                logger.debug(f"No rule matches {file_path}")
                return None

            rule = matching[0]
            logger.info(f"📄 {Path(file_path).name} → Rule: {rule.name}")

            metadata = None
            if is_screenshot_rule(rule):
                metadata = await self.capture_metadata()

            return await self.execute_rule(rule, file_path, metadata)
        except Exception as e:
            logger.error(f"Error handling {file_path}: {e}", exc_info=True)
            return None
        finally:
            self.in_flight.release_later(key, self.settle_delay)

    async def capture_metadata(self) -> Optional[ScreenshotMetadata]:
        try:
            metadata = await self.metadata_provider.capture()
        except Exception as e:
            logger.warning(f"Metadata capture failed: {e}")
            return None

        if metadata:
            logger.info(f"    App: {metadata.app_name}"
                        + (f", Domain: {metadata.domain}" if metadata.domain else ""))
        else:
            logger.info("    (Metadata capture not available - using defaults)")
        return metadata

    async def execute_rule(self, rule: Rule, file_path: str,
                           metadata: Optional[ScreenshotMetadata] = None,
                           triggered_by: str = "file_event") -> RuleRun:
        """Execute a rule's actions, recording the run before and after"""
        file_size = None
        try:
            file_size = os.path.getsize(file_path)
        except OSError:
            pass

        run = RuleRun(
            rule_id=rule.id,
            status=RunStatus.running,
            triggered_by=triggered_by,
            file_path=str(file_path),
            file_size=file_size,
            tags=list(rule.tags),
            dry_run=self.dry_run,
        )
        await self._record(run)

        try:
            results = await self.engine.execute_actions(rule.actions, file_path, self.dry_run, metadata)
            summary = summarize(results)
            run = run.model_copy(update={
                "status": summary["status"],
                "actions": results,
                "destination_path": summary["destination_path"],
                "completed_at": datetime.now(),
            })
            for result in results:
                action_type = result.action.type.upper()
                if result.success:
                    logger.info(f"    ✓ {action_type}: {Path(result.destination_path).name}")
                else:
                    logger.info(f"    ✗ {action_type}: {result.error}")
        except Exception as e:
            run = run.model_copy(update={
                "status": RunStatus.failed.value,
                "error": str(e),
                "completed_at": datetime.now(),
            })
            logger.error(f"    ✗ Error: {e}")

        await self._record(run)
        return run

    async def _record(self, run: RuleRun):
        if self.store is None:
            return
        try:
            await self.store.save_run(run)
        except Exception as e:
            logger.error(f"Failed to record run {run.id}: {e}")

    async def organize_existing(self, folder: str) -> List[RuleRun]:
        """Run every regular, non-hidden file already in folder through the rules"""
        runs = []
        try:
            entries = sorted(os.scandir(folder), key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Could not read {folder}: {e}")
            return runs

        for entry in entries:
            if entry.name.startswith(".") or not entry.is_file():
                continue
            run = await self.handle_event(entry.path, "created")
            if run:
                runs.append(run)
        return runs

    async def stop(self):
        """Stop accepting events and wait for in-flight rules to finish"""
        self.accepting = False
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight rule(s)")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
