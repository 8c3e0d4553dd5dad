import os
import json
import logging
from pathlib import Path
from typing import List, Optional

import aiosqlite

from filewarden.schemas.rules import Rule, RuleRun

logger = logging.getLogger(__name__)


def default_db_path() -> Path:
    return Path(os.getenv("DB_PATH") or Path.home() / ".filewarden" / "filewarden.db")


class RuleStore:
    """Rule and run persistence backed by SQLite"""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path) if db_path else default_db_path()
        self._db: Optional[aiosqlite.Connection] = None

    async def get_db(self) -> aiosqlite.Connection:
        """Get database connection"""
        if self._db is None:
            await self.init_db()
        return self._db

    async def init_db(self) -> None:
        """Initialize database with schema"""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(str(self.db_path), timeout=30.0)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode = WAL")
            await self.create_tables()
            logger.info(f"Database initialized at {self.db_path}")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    async def close_db(self) -> None:
        """Close database connection"""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    async def create_tables(self) -> None:
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS fw_rules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                enabled BOOLEAN DEFAULT 1,
                priority INTEGER DEFAULT 0,
                tags_json TEXT,
                trigger_json TEXT NOT NULL,
                conditions_json TEXT NOT NULL,
                actions_json TEXT NOT NULL,
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS fw_runs (
                id TEXT PRIMARY KEY,
                rule_id TEXT NOT NULL,
                status TEXT NOT NULL,
                run_json TEXT NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP
            )
        """)

        await self._db.execute("CREATE INDEX IF NOT EXISTS idx_fw_runs_rule ON fw_runs(rule_id)")
        await self._db.commit()

    # Rules

    async def save_rule(self, rule: Rule) -> None:
        """Insert or replace a rule by id, keeping its original position"""
        db = await self.get_db()
        doc = rule.model_dump(mode="json", by_alias=True)
        await db.execute("""
            INSERT INTO fw_rules (id, name, enabled, priority, tags_json, trigger_json,
                                  conditions_json, actions_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                enabled = excluded.enabled,
                priority = excluded.priority,
                tags_json = excluded.tags_json,
                trigger_json = excluded.trigger_json,
                conditions_json = excluded.conditions_json,
                actions_json = excluded.actions_json,
                updated_at = excluded.updated_at
        """, (
            rule.id,
            rule.name,
            1 if rule.enabled else 0,
            rule.priority,
            json.dumps(doc["tags"]),
            json.dumps(doc["trigger"]),
            json.dumps(doc["conditions"]),
            json.dumps(doc["actions"]),
            doc["createdAt"],
            doc["updatedAt"],
        ))
        await db.commit()

    async def get_rules(self) -> List[Rule]:
        """All rules in insertion order"""
        db = await self.get_db()
        cursor = await db.execute("SELECT * FROM fw_rules ORDER BY rowid ASC")
        rows = await cursor.fetchall()

        rules = []
        for row in rows:
            try:
                rules.append(Rule.model_validate({
                    "id": row["id"],
                    "name": row["name"],
                    "enabled": bool(row["enabled"]),
                    "priority": row["priority"],
                    "tags": json.loads(row["tags_json"]) if row["tags_json"] else [],
                    "trigger": json.loads(row["trigger_json"]),
                    "conditions": json.loads(row["conditions_json"]),
                    "actions": json.loads(row["actions_json"]),
                    "createdAt": row["created_at"],
                    "updatedAt": row["updated_at"],
                }))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping unreadable rule {row['id']}: {e}")
        return rules

    async def get_enabled_rules(self) -> List[Rule]:
        return [r for r in await self.get_rules() if r.enabled]

    async def delete_rule(self, rule_id: str) -> bool:
        db = await self.get_db()
        cursor = await db.execute("DELETE FROM fw_rules WHERE id = ?", (rule_id,))
        await db.commit()
        return cursor.rowcount > 0

    # Runs

    async def save_run(self, run: RuleRun) -> None:
        """Insert or update a run by id"""
        db = await self.get_db()
        doc = run.model_dump(mode="json", by_alias=True)
        await db.execute("""
            INSERT INTO fw_runs (id, rule_id, status, run_json, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                run_json = excluded.run_json,
                completed_at = excluded.completed_at
        """, (
            run.id,
            run.rule_id,
            run.status,
            json.dumps(doc),
            doc["startedAt"],
            doc["completedAt"],
        ))
        await db.commit()

    async def get_runs(self, rule_id: Optional[str] = None) -> List[RuleRun]:
        db = await self.get_db()
        if rule_id:
            cursor = await db.execute(
                "SELECT run_json FROM fw_runs WHERE rule_id = ? ORDER BY rowid ASC", (rule_id,)
            )
        else:
            cursor = await db.execute("SELECT run_json FROM fw_runs ORDER BY rowid ASC")
        rows = await cursor.fetchall()
        return [RuleRun.model_validate(json.loads(row["run_json"])) for row in rows]
