"""Core database operations for beadwork.

Single source of truth for all SQLite operations. The CLI, MCP server and
HTTP API all import from this module. No daemon, no sync — just direct
SQLite with WAL mode.

Covers item CRUD, typed dependencies, events, readiness queries, spawning
cooked formulas and bonding them to head items.

Convention-based discovery: each project has a `.beadwork/` directory
containing `beadwork.db` (SQLite), `config.json` (project prefix, version)
and `formulas/*.toml`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from beadwork.bonding import Bonder
from beadwork.db_base import _now_iso
from beadwork.db_bonding import BondingMixin
from beadwork.db_dependencies import DependenciesMixin
from beadwork.db_events import EventsMixin
from beadwork.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from beadwork.db_spawn import SpawnMixin
from beadwork.deps import BLOCKS, PARENT_CHILD, Edge
from beadwork.errors import StorageError
from beadwork.locking import ItemLocks
from beadwork.readiness import ReadinessEngine
from beadwork.subgraph import ItemKind, is_container, validate_kind
from beadwork.types.core import ItemDict, ProjectConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

BEADWORK_DIR_NAME = ".beadwork"
DB_FILENAME = "beadwork.db"
CONFIG_FILENAME = "config.json"
FORMULAS_DIR_NAME = "formulas"

VALID_ORIGINS: frozenset[str] = frozenset({"formula", "proto"})


def find_beadwork_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .beadwork/ directory.

    Returns the .beadwork/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / BEADWORK_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {BEADWORK_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(beadwork_dir: Path) -> ProjectConfig:
    """Read .beadwork/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="beadwork", version=1, default_policy="default")
    config_path = beadwork_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    return result


def write_config(beadwork_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .beadwork/config.json."""
    config_path = beadwork_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Item:
    id: str
    title: str
    kind: ItemKind = "task"
    status: str = "open"
    priority: int = 2
    origin: str = "proto"
    formula: str = ""
    created_at: str = ""
    updated_at: str = ""
    closed_at: str | None = None
    description: str = ""
    # Computed (not stored directly)
    blocks: list[str] = field(default_factory=list)
    blocked_by: list[str] = field(default_factory=list)
    parents: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)
    is_ready: bool = False

    @property
    def is_container(self) -> bool:
        return is_container(self.kind)

    def to_dict(self) -> ItemDict:
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "status": self.status,
            "priority": self.priority,
            "origin": self.origin,
            "formula": self.formula,
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
            "closed_at": self.closed_at,  # type: ignore[typeddict-item]
            "description": self.description,
            "blocks": self.blocks,
            "blocked_by": self.blocked_by,
            "parents": self.parents,
            "children": self.children,
            "is_ready": self.is_ready,
        }


# ---------------------------------------------------------------------------
# BeadDB: the core
# ---------------------------------------------------------------------------


class BeadDB(EventsMixin, DependenciesMixin, SpawnMixin, BondingMixin):
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and MCP."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = "beadwork",
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._tx_depth = 0
        self._write_lock = threading.RLock()
        self._locks = ItemLocks()
        self._readiness: ReadinessEngine | None = None
        self._bonder: Bonder | None = None

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> BeadDB:
        """Create a BeadDB by discovering .beadwork/ from project_path (or cwd)."""
        beadwork_dir = find_beadwork_root(project_path)
        config = read_config(beadwork_dir)
        db = cls(beadwork_dir / DB_FILENAME, prefix=config.get("prefix", "beadwork"))
        db.initialize()
        return db

    def __enter__(self) -> BeadDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    @property
    def readiness(self) -> ReadinessEngine:
        if self._readiness is None:
            self._readiness = ReadinessEngine(self, generation=self._data_version)
        return self._readiness

    def _data_version(self) -> int:
        """Changes whenever another connection commits to this database file."""
        result: int = self.conn.execute("PRAGMA data_version").fetchone()[0]
        return result

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema v{current_version} is newer than this beadwork (v{CURRENT_SCHEMA_VERSION})"
            raise StorageError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def reconnect(self, *, check_same_thread: bool = True) -> None:
        """Close and reopen the connection, e.g. to hand it to a threadpool."""
        self.close()
        self._check_same_thread = check_same_thread
        if self._readiness is not None:
            self._readiness.invalidate_all()

    # -- Transactions --------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes into one atomic unit.

        Nested use joins the outermost transaction, which alone commits or
        rolls back. On rollback every cached readiness state is dropped,
        since it may have been computed from writes that no longer exist.
        Threads sharing one connection take turns: a transaction holds the
        write lock until it ends.
        """
        with self._write_lock:
            if self._tx_depth > 0:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            self._tx_depth = 1
            try:
                # Take the database write lock up front: checks made inside the
                # transaction stay valid against other connections until commit.
                if not self.conn.in_transaction:
                    self.conn.execute("BEGIN IMMEDIATE")
                yield
            except BaseException:
                self._tx_depth = 0
                self.conn.rollback()
                self.readiness.invalidate_all()
                raise
            self._tx_depth = 0
            self.conn.commit()

    def _mark_dirty(self, item_ids: Iterable[str]) -> None:
        """Invalidate readiness for items whose structure just changed."""
        self.readiness.invalidate(list(item_ids))

    def _generate_unique_id(self) -> str:
        """Generate a unique item ID using O(1) EXISTS checks against the PK index."""
        for _ in range(10):
            candidate = f"{self.prefix}-{uuid.uuid4().hex[:10]}"
            if self.conn.execute("SELECT 1 FROM items WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}-{uuid.uuid4().hex[:16]}"

    # -- Item CRUD -----------------------------------------------------------

    def create_item(
        self,
        title: str,
        *,
        kind: str = "task",
        priority: int = 2,
        parent_id: str | None = None,
        description: str = "",
        origin: str = "proto",
        formula: str = "",
        deps: list[str] | None = None,
        actor: str = "",
    ) -> Item:
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        if not (0 <= priority <= 4):
            msg = f"Priority must be between 0 and 4, got {priority}"
            raise ValueError(msg)
        validate_kind(kind)
        if origin not in VALID_ORIGINS:
            msg = f"Unknown origin '{origin}'. Valid origins: {', '.join(sorted(VALID_ORIGINS))}"
            raise ValueError(msg)

        # Validate references BEFORE any writes to prevent partial commits
        refs = [*(deps or []), *([parent_id] if parent_id else [])]
        if refs:
            ph = ",".join("?" * len(refs))
            found = {r["id"] for r in self.conn.execute(f"SELECT id FROM items WHERE id IN ({ph})", refs).fetchall()}
            missing = [r for r in refs if r not in found]
            if missing:
                msg = f"Invalid item IDs (not found): {', '.join(missing)}"
                raise ValueError(msg)

        item_id = self._generate_unique_id()
        now = _now_iso()
        with self.transaction():
            self.conn.execute(
                "INSERT INTO items (id, title, kind, status, priority, origin, formula, "
                "created_at, updated_at, description) "
                "VALUES (?, ?, ?, 'open', ?, ?, ?, ?, ?, ?)",
                (item_id, title, kind, priority, origin, formula, now, now, description),
            )
            self._record_event(item_id, "created", actor=actor, new_value=title)
            edges = [Edge(item_id, d, BLOCKS) for d in deps or []]
            if parent_id:
                edges.append(Edge(item_id, parent_id, PARENT_CHILD))
            for edge in edges:
                self.conn.execute(
                    "INSERT OR IGNORE INTO dependencies (subject_id, object_id, type, created_at) VALUES (?, ?, ?, ?)",
                    (edge.subject, edge.object, edge.type, now),
                )
            self._mark_dirty([item_id])

        return self.get_item(item_id)

    def get_item(self, item_id: str) -> Item:
        items = self._build_items_batch([item_id])
        if not items:
            msg = f"Item not found: {item_id}"
            raise KeyError(msg)
        return items[0]

    def _build_items_batch(self, item_ids: list[str]) -> list[Item]:
        """Build multiple Items with batched queries, preserving input order."""
        if not item_ids:
            return []

        placeholders = ",".join("?" * len(item_ids))
        rows_by_id: dict[str, sqlite3.Row] = {
            r["id"]: r for r in self.conn.execute(f"SELECT * FROM items WHERE id IN ({placeholders})", item_ids).fetchall()
        }

        blocks_by_id: dict[str, list[str]] = {iid: [] for iid in item_ids}
        children_by_id: dict[str, list[str]] = {iid: [] for iid in item_ids}
        for r in self.conn.execute(
            f"SELECT subject_id, object_id, type FROM dependencies WHERE object_id IN ({placeholders}) ORDER BY subject_id",
            item_ids,
        ).fetchall():
            if r["type"] == PARENT_CHILD:
                children_by_id[r["object_id"]].append(r["subject_id"])
            elif r["type"] in ("blocks", "conditional-blocks", "waits-for"):
                blocks_by_id[r["object_id"]].append(r["subject_id"])

        parents_by_id: dict[str, list[str]] = {iid: [] for iid in item_ids}
        for r in self.conn.execute(
            f"SELECT subject_id, object_id FROM dependencies WHERE subject_id IN ({placeholders}) AND type = ? ORDER BY object_id",
            [*item_ids, PARENT_CHILD],
        ).fetchall():
            parents_by_id[r["subject_id"]].append(r["object_id"])

        result: list[Item] = []
        for iid in item_ids:
            row = rows_by_id.get(iid)
            if row is None:
                continue
            reasons = self.readiness.blocked_reasons(iid)
            blocked = self.readiness.is_blocked(iid)
            result.append(
                Item(
                    id=row["id"],
                    title=row["title"],
                    kind=row["kind"],
                    status=row["status"],
                    priority=row["priority"],
                    origin=row["origin"],
                    formula=row["formula"],
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                    closed_at=row["closed_at"],
                    description=row["description"] or "",
                    blocks=blocks_by_id.get(iid, []),
                    blocked_by=reasons.open_blockers,
                    parents=parents_by_id.get(iid, []),
                    children=children_by_id.get(iid, []),
                    is_ready=row["status"] == "open" and not blocked,
                )
            )
        return result

    def list_items(
        self,
        *,
        kind: str | None = None,
        status: str | None = None,
        formula: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Item]:
        if limit < 0:
            limit = 100
        if offset < 0:
            offset = 0
        conditions: list[str] = []
        params: list[Any] = []
        if kind is not None:
            conditions.append("kind = ?")
            params.append(kind)
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        if formula is not None:
            conditions.append("formula = ?")
            params.append(formula)

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([limit, offset])
        rows = self.conn.execute(
            f"SELECT id FROM items{where} ORDER BY priority, created_at, id LIMIT ? OFFSET ?",
            params,
        ).fetchall()
        return self._build_items_batch([r["id"] for r in rows])

    def _set_status(self, item_id: str, status: str, *, event_type: str, actor: str) -> Item:
        current = self.get_item(item_id)
        now = _now_iso()
        closed_at = now if status == "closed" else None
        with self.transaction():
            self.conn.execute(
                "UPDATE items SET status = ?, closed_at = ?, updated_at = ? WHERE id = ?",
                (status, closed_at, now, item_id),
            )
            self._record_event(item_id, event_type, actor=actor, old_value=current.status, new_value=status)
            self._mark_dirty([item_id])
        return self.get_item(item_id)

    def close_item(self, item_id: str, *, actor: str = "") -> Item:
        current = self.get_item(item_id)
        if current.status == "closed":
            msg = f"Item {item_id} is already closed (closed_at: {current.closed_at})"
            raise ValueError(msg)
        return self._set_status(item_id, "closed", event_type="closed", actor=actor)

    def reopen_item(self, item_id: str, *, actor: str = "") -> Item:
        current = self.get_item(item_id)
        if current.status != "closed":
            msg = f"Cannot reopen {item_id}: status '{current.status}' is not closed"
            raise ValueError(msg)
        return self._set_status(item_id, "open", event_type="reopened", actor=actor)
