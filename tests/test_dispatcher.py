"""
Tests for event dispatch: duplicate suppression, first-match execution and run records.
"""
import asyncio
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, Mock

from filewarden.schemas.rules import ScreenshotMetadata
from filewarden.services.metadata_service import MetadataProvider
from filewarden.worker.dispatcher import EventDispatcher, InFlightPaths, group_rules_by_folder
from filewarden.worker.rules.engine import RulesEngine
from conftest import make_rule, move_action

PDF = [{"type": "extension", "operator": "equals", "value": "pdf"}]
PNG = [{"type": "extension", "operator": "in", "value": ["png"]}]


@pytest.fixture
def engine(mock_config, mock_compress):
    return RulesEngine(mock_config, mock_compress)


def build(engine, store, rules, path_vars, **kwargs):
    return EventDispatcher(
        engine,
        store=store,
        rules_by_folder=group_rules_by_folder(rules, path_vars),
        **kwargs,
    )


class TestRuleGrouping:

    @pytest.mark.worker
    def test_group_by_expanded_folder(self, path_vars):
        """Test rules are keyed by their expanded trigger folder."""
        a = make_rule("a", folder="{downloads}")
        b = make_rule("b", folder="{screenshots}")
        off = make_rule("off", folder="{downloads}", enabled=False)
        none = make_rule("none", folder="")

        grouped = group_rules_by_folder([a, b, off, none], path_vars)

        assert grouped == {path_vars["downloads"]: [a], path_vars["screenshots"]: [b]}

    @pytest.mark.worker
    def test_rules_for_nested_path(self, engine, path_vars):
        """Test a file in a nested watched folder sees both folders' rules."""
        a = make_rule("a", folder="{downloads}")
        b = make_rule("b", folder="{screenshots}")
        dispatcher = build(engine, None, [a, b], path_vars)

        shot = str(Path(path_vars["screenshots"]) / "s.png")
        assert dispatcher.rules_for_path(shot) == [a, b]
        assert dispatcher.rules_for_path(str(Path(path_vars["downloads"]) / "f.pdf")) == [a]
        assert dispatcher.rules_for_path(path_vars["downloads"] + "-other/f.pdf") == []


class TestInFlightPaths:

    @pytest.mark.worker
    def test_acquire_once(self):
        paths = InFlightPaths()
        assert paths.try_acquire("/a") is True
        assert paths.try_acquire("/a") is False
        paths.release("/a")
        assert paths.try_acquire("/a") is True

    @pytest.mark.worker
    async def test_release_later(self):
        paths = InFlightPaths()
        paths.try_acquire("/a")
        paths.release_later("/a", 0.05)
        assert "/a" in paths
        await asyncio.sleep(0.1)
        assert "/a" not in paths


class TestEventDispatcher:

    @pytest.mark.worker
    async def test_only_first_match_runs(self, engine, mock_store, downloads, path_vars):
        """Test exactly one rule fires: the highest-priority match."""
        src = downloads / "bank_invoice.pdf"
        src.write_bytes(b"%PDF")
        rules = [
            make_rule("default", 100, PDF, [move_action("{downloads}/PDFs/Unsorted")]),
            make_rule("invoice", 400, PDF, [move_action("{downloads}/PDFs/Invoices")]),
            make_rule("bank", 300, PDF, [move_action("{downloads}/PDFs/Finance")]),
        ]
        dispatcher = build(engine, mock_store, rules, path_vars, settle_delay=0)

        run = await dispatcher.handle_event(str(src), "created")

        assert run.rule_id == rules[1].id
        assert (downloads / "PDFs" / "Invoices" / "bank_invoice.pdf").exists()
        assert not (downloads / "PDFs" / "Finance").exists()
        assert not (downloads / "PDFs" / "Unsorted").exists()

    @pytest.mark.worker
    async def test_run_recorded_before_and_after(self, engine, mock_store, downloads, path_vars):
        """Test a run is saved as running, then completed with its destination."""
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF-data")
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")], tags=["pdf"])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0)

        run = await dispatcher.handle_event(str(src), "created")

        first, last = mock_store.saved_runs
        assert first.id == last.id == run.id
        assert first.status == "running"
        assert first.file_size == len(b"%PDF-data")
        assert first.completed_at is None
        assert last.status == "completed"
        assert last.destination_path == str(downloads / "PDFs" / "report.pdf")
        assert last.tags == ["pdf"]
        assert last.completed_at is not None

    @pytest.mark.worker
    async def test_failed_run(self, engine, mock_store, downloads, path_vars):
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        engine.compress_job.compress.side_effect = RuntimeError("Ghostscript failed with code 1: bad")
        rule = make_rule("pdf", 1, PDF, [
            move_action("{downloads}/PDFs"),
            {"type": "compress", "config": {"destination": "{downloads}/PDFs/Compressed"}},
        ])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0)

        run = await dispatcher.handle_event(str(src), "created")

        assert run.status == "failed"
        assert run.destination_path == str(downloads / "PDFs" / "report.pdf")
        assert [a.status for a in run.actions] == ["success", "failed"]

    @pytest.mark.worker
    async def test_engine_exception_does_not_escape(self, mock_store, downloads, path_vars):
        """Test an unexpected engine error marks the run failed."""
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        engine = Mock(spec=RulesEngine)
        engine.execute_actions = AsyncMock(side_effect=RuntimeError("boom"))
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0)

        run = await dispatcher.handle_event(str(src), "created")

        assert run.status == "failed"
        assert run.error == "boom"
        assert mock_store.saved_runs[-1].status == "failed"

    @pytest.mark.worker
    async def test_duplicate_events_collapse(self, engine, mock_store, downloads, path_vars):
        """Test rapid events for one path execute the rule once."""
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs", action_type="copy")])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0.2)

        tasks = [dispatcher.submit(str(src), kind) for kind in ("created", "modified", "created")]
        results = await asyncio.gather(*tasks)

        assert sum(1 for r in results if r is not None) == 1
        assert sorted(p.name for p in (downloads / "PDFs").iterdir()) == ["report.pdf"]

        # still settling
        assert await dispatcher.handle_event(str(src), "created") is None

        await asyncio.sleep(0.3)
        assert await dispatcher.handle_event(str(src), "created") is not None

    @pytest.mark.worker
    async def test_distinct_paths_run_concurrently(self, mock_store, downloads, path_vars):
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def slow(actions, path, dry_run, metadata):
            calls.append(Path(path).name)
            if len(calls) == 2:
                started.set()
            await release.wait()
            return []

        engine = Mock(spec=RulesEngine)
        engine.execute_actions = AsyncMock(side_effect=slow)
        dispatcher = build(engine, mock_store, [make_rule("pdf", 1, PDF)], path_vars, settle_delay=0)
        for name in ("a.pdf", "b.pdf"):
            (downloads / name).write_bytes(b"%PDF")

        tasks = [dispatcher.submit(str(downloads / n), "created") for n in ("a.pdf", "b.pdf")]
        await asyncio.wait_for(started.wait(), timeout=1)
        release.set()
        await asyncio.gather(*tasks)

        assert sorted(calls) == ["a.pdf", "b.pdf"]

    @pytest.mark.worker
    async def test_trigger_kind_filter(self, engine, mock_store, downloads, path_vars):
        """Test modified events only reach file_modified rules."""
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0)

        assert await dispatcher.handle_event(str(src), "modified") is None
        assert src.exists()
        mock_store.save_run.assert_not_awaited()

    @pytest.mark.worker
    async def test_screenshot_metadata_absent(self, engine, mock_store, path_vars):
        """Test a screenshot rule runs with default folders when capture yields nothing."""
        shots = Path(path_vars["screenshots"])
        shots.mkdir(parents=True)
        src = shots / "Screen Shot.png"
        src.write_bytes(b"png")
        rule = make_rule(
            "shots", 450, PNG,
            [move_action("{screenshots}/Organized/{app}/{domain}")],
            folder="{screenshots}", tags=["screenshot"],
        )
        provider = Mock(spec=MetadataProvider)
        provider.capture = AsyncMock(return_value=None)
        dispatcher = build(engine, mock_store, [rule], path_vars, metadata_provider=provider, settle_delay=0)

        run = await dispatcher.handle_event(str(src), "created")

        provider.capture.assert_awaited_once()
        assert run.status == "completed"
        assert (shots / "Organized" / "Unknown" / "General" / "Screen Shot.png").exists()

    @pytest.mark.worker
    async def test_screenshot_metadata_used(self, engine, mock_store, path_vars):
        shots = Path(path_vars["screenshots"])
        shots.mkdir(parents=True)
        src = shots / "shot.png"
        src.write_bytes(b"png")
        rule = make_rule(
            "shots", 450, PNG,
            [move_action("{screenshots}/ByApp/{app}")],
            folder="{screenshots}", trigger_type="screenshot",
        )
        provider = Mock(spec=MetadataProvider)
        provider.capture = AsyncMock(return_value=ScreenshotMetadata(app_name="Slack"))
        dispatcher = build(engine, mock_store, [rule], path_vars, metadata_provider=provider, settle_delay=0)

        await dispatcher.handle_event(str(src), "created")

        assert (shots / "ByApp" / "Slack" / "shot.png").exists()

    @pytest.mark.worker
    async def test_non_screenshot_rule_skips_capture(self, engine, mock_store, downloads, path_vars):
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        provider = Mock(spec=MetadataProvider)
        provider.capture = AsyncMock(return_value=None)
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")])
        dispatcher = build(engine, mock_store, [rule], path_vars, metadata_provider=provider, settle_delay=0)

        await dispatcher.handle_event(str(src), "created")

        provider.capture.assert_not_awaited()

    @pytest.mark.worker
    async def test_dry_run_dispatch(self, engine, mock_store, downloads, path_vars):
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")])
        dispatcher = build(engine, mock_store, [rule], path_vars, dry_run=True, settle_delay=0)

        run = await dispatcher.handle_event(str(src), "created")

        assert run.dry_run is True
        assert run.destination_path == str(downloads / "PDFs" / "report.pdf")
        assert src.exists()
        assert not (downloads / "PDFs").exists()

    @pytest.mark.worker
    async def test_organize_existing(self, engine, mock_store, downloads, path_vars):
        """Test files already present are organized, skipping dotfiles and folders."""
        (downloads / "a.pdf").write_bytes(b"%PDF")
        (downloads / "b.pdf").write_bytes(b"%PDF")
        (downloads / ".hidden.pdf").write_bytes(b"%PDF")
        (downloads / "sub").mkdir()
        (downloads / "notes.txt").write_text("no rule for me")
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0)

        runs = await dispatcher.organize_existing(str(downloads))

        assert len(runs) == 2
        assert sorted(p.name for p in (downloads / "PDFs").iterdir()) == ["a.pdf", "b.pdf"]
        assert (downloads / ".hidden.pdf").exists()
        assert (downloads / "notes.txt").exists()

    @pytest.mark.worker
    async def test_stop_drains_and_refuses(self, engine, mock_store, downloads, path_vars):
        src = downloads / "report.pdf"
        src.write_bytes(b"%PDF")
        rule = make_rule("pdf", 1, PDF, [move_action("{downloads}/PDFs")])
        dispatcher = build(engine, mock_store, [rule], path_vars, settle_delay=0)

        task = dispatcher.submit(str(src), "created")
        await dispatcher.stop()

        assert task.done()
        assert (downloads / "PDFs" / "report.pdf").exists()
        assert dispatcher.submit(str(downloads / "other.pdf"), "created") is None
