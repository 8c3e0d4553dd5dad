import pytest
from pathlib import Path
from unittest.mock import Mock, AsyncMock

from filewarden.db.database import RuleStore
from filewarden.schemas.rules import Rule
from filewarden.services.config_service import AgentConfig, ConfigService
from filewarden.worker.jobs.compress import CompressJob


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host configuration out of the tests."""
    import os
    for key in list(os.environ):
        if key.startswith("FILEWARDEN_"):
            monkeypatch.delenv(key)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.delenv("DB_PATH", raising=False)


@pytest.fixture
def path_vars(tmp_path):
    """Configured path placeholders rooted in a temporary home."""
    home = tmp_path / "home"
    return {
        "downloads": str(home / "Downloads"),
        "documents": str(home / "Documents"),
        "desktop": str(home / "Desktop"),
        "pictures": str(home / "Pictures"),
        "screenshots": str(home / "Downloads" / "Screenshots"),
        "videos": str(home / "Movies"),
        "music": str(home / "Music"),
        "home": str(home),
    }


@pytest.fixture
def downloads(path_vars):
    folder = Path(path_vars["downloads"])
    folder.mkdir(parents=True)
    return folder


@pytest.fixture
def config_service(tmp_path, path_vars):
    """A ConfigService backed by a temporary file holding path_vars."""
    service = ConfigService(str(tmp_path / "config.json"))
    service._write(AgentConfig(paths=dict(path_vars)))
    return service


@pytest.fixture
def mock_config(path_vars):
    """Create a mock configuration service."""
    config = Mock(spec=ConfigService)
    config.load_config = AsyncMock(return_value=AgentConfig(paths=dict(path_vars)))
    return config


@pytest.fixture
def mock_compress():
    """Create a mock compression job that writes the output file."""
    job = Mock(spec=CompressJob)

    async def compress(source, destination, quality="medium"):
        Path(destination).write_bytes(b"%PDF-compressed")
        return Path(destination)

    job.compress = AsyncMock(side_effect=compress)
    return job


@pytest.fixture
async def store(tmp_path):
    """Create a test database."""
    rule_store = RuleStore(str(tmp_path / "filewarden.db"))
    await rule_store.init_db()
    yield rule_store
    await rule_store.close_db()


@pytest.fixture
def mock_store():
    """Create a mock rule store that keeps saved runs in memory."""
    rule_store = Mock(spec=RuleStore)
    rule_store.saved_runs = []

    async def save_run(run):
        rule_store.saved_runs.append(run)

    rule_store.save_run = AsyncMock(side_effect=save_run)
    return rule_store


def make_rule(name="Rule", priority=0, conditions=None, actions=None, folder="{downloads}",
              trigger_type="file_created", tags=None, enabled=True) -> Rule:
    return Rule(
        name=name,
        priority=priority,
        enabled=enabled,
        tags=tags or [],
        trigger={"type": trigger_type, "config": {"folder": folder}},
        conditions=conditions or [],
        actions=actions or [],
    )


def move_action(destination, pattern=None, action_type="move"):
    config = {"destination": destination, "createDirs": True}
    if pattern:
        config["pattern"] = pattern
    return {"type": action_type, "config": config}
