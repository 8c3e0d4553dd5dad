import os
import asyncio
import logging
import signal
from typing import Optional

from filewarden.db.database import RuleStore
from filewarden.services.config_service import ConfigService
from filewarden.services.metadata_service import get_metadata_provider
from filewarden.utils.logging_config import setup_logging
from filewarden.worker.dispatcher import EventDispatcher, group_rules_by_folder
from filewarden.worker.file_watcher import FolderWatcher
from filewarden.worker.rules.defaults import install_default_rules
from filewarden.worker.rules.engine import RulesEngine

logger = logging.getLogger(__name__)


def env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Agent:
    def __init__(self, config_service: Optional[ConfigService] = None,
                 store: Optional[RuleStore] = None):
        self.config_service = config_service or ConfigService()
        self.store = store or RuleStore()
        self.dispatcher: Optional[EventDispatcher] = None
        self.watcher: Optional[FolderWatcher] = None
        self.dry_run = env_flag("DRY_RUN")
        self.settle_delay = float(os.getenv("SETTLE_DELAY_SEC", "1.0"))
        self.running = False
        self._stop_event: Optional[asyncio.Event] = None

    async def setup(self) -> bool:
        """Build the pipeline; returns False when there is nothing to watch"""
        config = await self.config_service.load_config()

        await self.store.get_db()
        await install_default_rules(self.store, config)

        rules = await self.store.get_enabled_rules()
        if not rules:
            logger.warning("No enabled rules found, nothing to do")
            return False
        logger.info(f"📋 Loaded {len(rules)} rule(s)")

        rules_by_folder = group_rules_by_folder(rules, config.paths)
        self.dispatcher = EventDispatcher(
            RulesEngine(self.config_service),
            store=self.store,
            metadata_provider=get_metadata_provider(),
            rules_by_folder=rules_by_folder,
            dry_run=self.dry_run,
            settle_delay=self.settle_delay,
        )
        self.watcher = FolderWatcher(self.dispatcher.submit)
        await self.watcher.start(rules_by_folder.keys())

        if env_flag("ORGANIZE_EXISTING"):
            for folder in rules_by_folder:
                runs = await self.dispatcher.organize_existing(folder)
                logger.info(f"Organized {len(runs)} existing file(s) in {folder}")
        return True

    async def start(self):
        """Start the agent and run until stopped"""
        logger.info("🚀 Starting filewarden agent...")
        if self.dry_run:
            logger.info("Dry run: actions are previewed, no files are changed")

        self._stop_event = asyncio.Event()
        if not await self.setup():
            await self.store.close_db()
            return

        self.running = True
        logger.info("filewarden agent started")

        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    def request_stop(self):
        if self._stop_event:
            self._stop_event.set()

    async def stop(self):
        """Stop watching, let in-flight rules finish, close the store"""
        if not self.running:
            return
        logger.info("Stopping filewarden agent...")
        self.running = False

        if self.watcher:
            await self.watcher.stop()
        if self.dispatcher:
            await self.dispatcher.stop()
        await self.store.close_db()

        logger.info("filewarden agent stopped")


async def main():
    """Main entry point for the agent"""
    setup_logging("filewarden-agent")
    agent = Agent()
    loop = asyncio.get_running_loop()

    # Handle signals
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        loop.call_soon_threadsafe(agent.request_stop)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await agent.start()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
