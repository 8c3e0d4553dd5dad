"""File watcher that reports settled file changes in watched folders"""

import os
import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

logger = logging.getLogger(__name__)

# Subfolders the built-in rules organize files into
IGNORED_FOLDERS = {
    "Images", "Videos", "Music", "Archives", "Documents", "Installers",
    "Code", "PDFs", "Organized", "ByApp", "ByDate",
}

CREATED = "created"
MODIFIED = "modified"


def is_ignored(path: str, root: str) -> bool:
    """Dotfiles and anything inside an organizational subfolder"""
    try:
        rel = Path(path).relative_to(root)
    except ValueError:
        return True
    parts = rel.parts
    if any(part.startswith(".") for part in parts):
        return True
    return any(part in IGNORED_FOLDERS for part in parts[:-1])


class FolderEventHandler(FileSystemEventHandler):
    """Forwards file events from the observer thread to the watcher"""

    def __init__(self, watcher: "FolderWatcher", root: str):
        self.watcher = watcher
        self.root = root

    def on_created(self, event):
        if not event.is_directory:
            self.handle_file(event.src_path, CREATED)

    def on_modified(self, event):
        if not event.is_directory:
            self.handle_file(event.src_path, MODIFIED)

    def on_moved(self, event):
        if not event.is_directory:
            self.handle_file(event.dest_path, CREATED)

    def handle_file(self, file_path, kind: str):
        file_path = os.fsdecode(file_path)
        if is_ignored(file_path, self.root):
            return
        self.watcher.notify(file_path, kind)


class PendingFile:
    __slots__ = ("kind", "size", "stable_since")

    def __init__(self, kind: str, size: Optional[int], stable_since: float):
        self.kind = kind
        self.size = size
        self.stable_since = stable_since


class FolderWatcher:
    """
    Watches folders and emits (path, kind) once a file's size stops changing.

    Observer threads hand events to the event loop; the settle loop runs on
    the loop and calls on_event for each file that has been stable for
    stability_threshold seconds.
    """

    def __init__(self, on_event: Callable[[str, str], None],
                 stability_threshold: float = 0.5, poll_interval: float = 0.1):
        self.on_event = on_event
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self.observers: Dict[str, Observer] = {}
        self.pending: Dict[str, PendingFile] = {}
        self.running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._settle_task: Optional[asyncio.Task] = None

    async def start(self, folders: Iterable[str]):
        """Start watching every folder that exists"""
        self._loop = asyncio.get_running_loop()
        self.running = True

        for folder in folders:
            if folder in self.observers:
                continue
            if not os.path.isdir(folder):
                logger.error(f"Watch folder does not exist: {folder}")
                continue

            observer = Observer()
            observer.schedule(FolderEventHandler(self, folder), folder, recursive=True)
            observer.start()
            self.observers[folder] = observer
            logger.info(f"Watching {folder}")

        self._settle_task = asyncio.create_task(self._settle_loop())

    def notify(self, file_path: str, kind: str):
        """Thread-safe entry point for observer threads"""
        if self._loop is None or not self.running:
            return
        self._loop.call_soon_threadsafe(self.track, file_path, kind)

    def track(self, file_path: str, kind: str):
        """Record a change; a created event is not downgraded by later modifications"""
        now = self._loop.time() if self._loop else 0.0
        existing = self.pending.get(file_path)
        if existing:
            existing.stable_since = now
            return
        self.pending[file_path] = PendingFile(kind, self._size(file_path), now)
        logger.debug(f"Detected {kind}: {file_path}")

    @staticmethod
    def _size(file_path: str) -> Optional[int]:
        try:
            return os.path.getsize(file_path)
        except OSError:
            return None

    def check_pending(self, now: float):
        """Emit files whose size has not changed for the stability threshold"""
        for file_path, entry in list(self.pending.items()):
            size = self._size(file_path)
            if size is None:
                del self.pending[file_path]
                continue
            if size != entry.size:
                entry.size = size
                entry.stable_since = now
                continue
            if now - entry.stable_since >= self.stability_threshold:
                del self.pending[file_path]
                try:
                    self.on_event(file_path, entry.kind)
                except Exception as e:
                    logger.error(f"Event handler failed for {file_path}: {e}", exc_info=True)

    async def _settle_loop(self):
        while self.running:
            self.check_pending(self._loop.time())
            await asyncio.sleep(self.poll_interval)

    async def stop(self):
        """Stop all observers; pending, unsettled files are dropped"""
        self.running = False

        for folder, observer in self.observers.items():
            logger.info(f"Stopped watching: {folder}")
            observer.stop()
            observer.join()
        self.observers.clear()

        if self._settle_task:
            self._settle_task.cancel()
            try:
                await self._settle_task
            except asyncio.CancelledError:
                pass
            self._settle_task = None
        self.pending.clear()
