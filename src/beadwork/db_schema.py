"""Database schema definitions for beadwork.

Contains the canonical SQL schema and the current schema version constant.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS items (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    kind        TEXT NOT NULL DEFAULT 'task',
    status      TEXT NOT NULL DEFAULT 'open',
    priority    INTEGER NOT NULL DEFAULT 2,
    origin      TEXT NOT NULL DEFAULT 'proto',
    formula     TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    closed_at   TEXT,
    description TEXT DEFAULT '',

    CHECK (kind IN ('epic', 'task', 'gate')),
    CHECK (status IN ('open', 'closed')),
    CHECK (origin IN ('formula', 'proto')),
    CHECK (priority BETWEEN 0 AND 4)
);

CREATE INDEX IF NOT EXISTS idx_items_status ON items(status);
CREATE INDEX IF NOT EXISTS idx_items_kind ON items(kind);
CREATE INDEX IF NOT EXISTS idx_items_status_priority ON items(status, priority, created_at);

CREATE TABLE IF NOT EXISTS dependencies (
    subject_id  TEXT NOT NULL REFERENCES items(id),
    object_id   TEXT NOT NULL REFERENCES items(id),
    type        TEXT NOT NULL DEFAULT 'blocks',
    created_at  TEXT NOT NULL,
    PRIMARY KEY (subject_id, object_id, type),
    CHECK (subject_id != object_id)
);

CREATE INDEX IF NOT EXISTS idx_deps_object ON dependencies(object_id, type);
CREATE INDEX IF NOT EXISTS idx_deps_subject_type ON dependencies(subject_id, type);

CREATE TABLE IF NOT EXISTS events (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id    TEXT NOT NULL REFERENCES items(id),
    event_type TEXT NOT NULL,
    actor      TEXT DEFAULT '',
    old_value  TEXT,
    new_value  TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_item ON events(item_id, created_at DESC);
"""

CURRENT_SCHEMA_VERSION = 1
