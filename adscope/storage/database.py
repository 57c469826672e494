from __future__ import annotations

import json
import logging
import math
import re
import sqlite3
from array import array
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from adscope.filters import ActiveFilterSet
from adscope.storage.models import EMBEDDING_FIELDS, Campaign, CampaignEmbedding

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS campaigns (
    id                      TEXT PRIMARY KEY,
    created_at              TEXT NOT NULL,
    company                 TEXT,
    brand                   TEXT,
    channel                 TEXT CHECK (channel IN ('facebook', 'instagram', 'twitter', 'email', 'direct_mail')),
    primary_product         TEXT,
    offer                   TEXT,
    incentives              TEXT NOT NULL DEFAULT '[]',
    key_value_props         TEXT NOT NULL DEFAULT '[]',
    campaign_text           TEXT,
    full_campaign_text      TEXT,
    imagery_sentiment       TEXT,
    imagery_visual_style    TEXT,
    imagery_primary_subject TEXT,
    imagery_demographics    TEXT NOT NULL DEFAULT '[]',
    volume                  INTEGER,
    spend                   REAL,
    capture_date            TEXT,
    image_urls              TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS campaign_vectors (
    campaign_id             TEXT PRIMARY KEY REFERENCES campaigns(id) ON DELETE CASCADE,
    value_prop_embedding    BLOB,
    copy_embedding          BLOB,
    visual_embedding        BLOB
);

CREATE VIRTUAL TABLE IF NOT EXISTS campaigns_fts USING fts5(
    campaign_id UNINDEXED,
    body,
    tokenize = 'porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS campaigns_fts_delete AFTER DELETE ON campaigns BEGIN
    DELETE FROM campaigns_fts WHERE campaign_id = old.id;
END;

CREATE INDEX IF NOT EXISTS idx_campaigns_channel ON campaigns(channel);
CREATE INDEX IF NOT EXISTS idx_campaigns_capture_date ON campaigns(capture_date);
CREATE INDEX IF NOT EXISTS idx_campaigns_company ON campaigns(company);
CREATE INDEX IF NOT EXISTS idx_campaigns_created_at ON campaigns(created_at);
"""

_JSON_COLUMNS = ("incentives", "key_value_props", "imagery_demographics", "image_urls")

_CAMPAIGN_COLUMNS = (
    "id", "created_at", "company", "brand", "channel", "primary_product", "offer",
    "incentives", "key_value_props", "campaign_text", "full_campaign_text",
    "imagery_sentiment", "imagery_visual_style", "imagery_primary_subject",
    "imagery_demographics", "volume", "spend", "capture_date", "image_urls",
)

_ORDER_RECENT = "ORDER BY c.created_at DESC, c.rowid DESC"


class StoreError(Exception):
    """A store query failed (connectivity, missing table or function, bad SQL)."""


def _pack(vector: list[float]) -> bytes:
    return array("f", vector).tobytes()


def _unpack(blob: bytes) -> array:
    values = array("f")
    values.frombytes(blob)
    return values


def _cosine_similarity(stored: bytes | None, query: bytes | None) -> float | None:
    if stored is None or query is None:
        return None
    a, b = _unpack(stored), _unpack(query)
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return None
    return dot / norm


def _casefold(text: str | None) -> str | None:
    return text.casefold() if text is not None else None


def _marks(values: list) -> str:
    return ", ".join("?" for _ in values)


def _filter_clauses(
    filters: ActiveFilterSet | None,
    fields: tuple[str, ...] = ("channel", "value_prop", "sentiment", "visual_style", "date_range"),
) -> tuple[list[str], list]:
    """Translate filters into SQL clauses over the `c` (campaigns) alias."""
    clauses: list[str] = []
    params: list = []
    if filters is None:
        return clauses, params

    if "channel" in fields and filters.channel:
        clauses.append(f"c.channel IN ({_marks(filters.channel)})")
        params.extend(filters.channel)
    if "value_prop" in fields and filters.value_prop:
        clauses.append(
            "EXISTS (SELECT 1 FROM json_each(c.key_value_props) AS vp "
            f"WHERE vp.value IN ({_marks(filters.value_prop)}))"
        )
        params.extend(filters.value_prop)
    if "sentiment" in fields and filters.sentiment:
        clauses.append(f"c.imagery_sentiment IN ({_marks(filters.sentiment)})")
        params.extend(filters.sentiment)
    if "visual_style" in fields and filters.visual_style:
        clauses.append(f"c.imagery_visual_style IN ({_marks(filters.visual_style)})")
        params.extend(filters.visual_style)
    if "date_range" in fields and filters.date_range and not filters.date_range.is_empty:
        # NULL capture dates fail both comparisons
        if filters.date_range.start:
            clauses.append("c.capture_date >= ?")
            params.append(filters.date_range.start.isoformat())
        if filters.date_range.end:
            clauses.append("c.capture_date <= ?")
            params.append(filters.date_range.end.isoformat())
    return clauses, params


def _where(clauses: list[str]) -> str:
    return " AND ".join(clauses) if clauses else "1=1"


def _fts_query(text: str) -> str:
    """Turn free text into an FTS5 query that requires every word."""
    terms = re.findall(r"\w+", text.lower())
    return " ".join(f'"{t}"' for t in terms)


def _row_to_campaign(row: aiosqlite.Row) -> Campaign:
    data = {k: row[k] for k in _CAMPAIGN_COLUMNS}
    for col in _JSON_COLUMNS:
        data[col] = json.loads(data[col]) if data[col] else []
    return Campaign.model_validate(data)


class Database:
    def __init__(self, db_path: Path, dimensions: int = 1536) -> None:
        self._db_path = db_path
        self._dimensions = dimensions
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(self._db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.create_function(
                "cosine_similarity", 2, _cosine_similarity, deterministic=True
            )
            await self._conn.create_function("casefold", 1, _casefold, deterministic=True)
            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open store at {self._db_path}: {e}") from e

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError("Database not connected")
        return self._conn

    async def _fetch(self, sql: str, params: list | tuple = ()) -> list[aiosqlite.Row]:
        try:
            async with self.conn.execute(sql, params) as cur:
                return list(await cur.fetchall())
        except sqlite3.Error as e:
            raise StoreError(f"Query failed: {e}") from e

    # --- Writes ---

    async def insert_campaign(
        self, campaign: Campaign, embedding: CampaignEmbedding | None = None
    ) -> Campaign:
        """Insert a campaign together with its vectors and text index row."""
        vectors = {}
        for name in EMBEDDING_FIELDS:
            vec = embedding.vector(name) if embedding else None
            if vec is not None and len(vec) != self._dimensions:
                raise ValueError(
                    f"{name} has {len(vec)} dimensions, expected {self._dimensions}"
                )
            vectors[name] = _pack(vec) if vec is not None else None

        data = campaign.model_dump(mode="json")
        for col in _JSON_COLUMNS:
            data[col] = json.dumps(data[col], ensure_ascii=False)
        cols = ", ".join(_CAMPAIGN_COLUMNS)
        body = " ".join(t for t in (campaign.campaign_text, campaign.full_campaign_text) if t)

        try:
            await self.conn.execute(
                f"INSERT INTO campaigns ({cols}) VALUES ({_marks(list(_CAMPAIGN_COLUMNS))})",
                [data[k] for k in _CAMPAIGN_COLUMNS],
            )
            await self.conn.execute(
                "INSERT INTO campaign_vectors (campaign_id, value_prop_embedding, copy_embedding, visual_embedding) "
                "VALUES (?, ?, ?, ?)",
                (campaign.id, *[vectors[name] for name in EMBEDDING_FIELDS]),
            )
            await self.conn.execute(
                "INSERT INTO campaigns_fts (campaign_id, body) VALUES (?, ?)",
                (campaign.id, body),
            )
            await self.conn.commit()
        except sqlite3.Error as e:
            await self.conn.rollback()
            raise StoreError(f"Failed to insert campaign {campaign.id}: {e}") from e
        return campaign

    # --- Reads ---

    async def get_campaign(self, campaign_id: str) -> Campaign | None:
        rows = await self._fetch("SELECT c.* FROM campaigns c WHERE c.id = ?", (campaign_id,))
        return _row_to_campaign(rows[0]) if rows else None

    async def filter_campaigns(
        self,
        filters: ActiveFilterSet | None = None,
        limit: int | None = 50,
        offset: int = 0,
    ) -> list[Campaign]:
        """Campaigns matching every present filter field, newest first."""
        clauses, params = _filter_clauses(filters)
        sql = f"SELECT c.* FROM campaigns c WHERE {_where(clauses)} {_ORDER_RECENT} LIMIT ? OFFSET ?"
        rows = await self._fetch(sql, [*params, limit if limit is not None else -1, offset])
        return [_row_to_campaign(r) for r in rows]

    async def count_campaigns(self, filters: ActiveFilterSet | None = None) -> int:
        clauses, params = _filter_clauses(filters)
        rows = await self._fetch(
            f"SELECT COUNT(*) AS n FROM campaigns c WHERE {_where(clauses)}", params
        )
        return rows[0]["n"] if rows else 0

    async def similarity_search(
        self,
        field: str,
        query_vector: list[float],
        filters: ActiveFilterSet | None = None,
        threshold: float = 0.7,
        limit: int = 20,
    ) -> list[Campaign]:
        """Campaigns whose `field` vector is more similar than `threshold`, best first.

        Only channel and value-prop filters are applied here; callers
        re-apply the remaining dimensions in memory.
        """
        if field not in EMBEDDING_FIELDS:
            raise StoreError(f"Unknown embedding field: {field}")
        clauses, params = _filter_clauses(filters, fields=("channel", "value_prop"))
        sql = f"""
            SELECT c.*, s.similarity FROM (
                SELECT campaign_id, cosine_similarity({field}, ?) AS similarity
                FROM campaign_vectors
                WHERE {field} IS NOT NULL
            ) s
            JOIN campaigns c ON c.id = s.campaign_id
            WHERE s.similarity > ? AND {_where(clauses)}
            ORDER BY s.similarity DESC
            LIMIT ?
        """
        rows = await self._fetch(sql, [_pack(query_vector), threshold, *params, limit])
        return [_row_to_campaign(r) for r in rows]

    async def text_search(
        self, query: str, channels: list[str] | None = None, limit: int = 50
    ) -> list[Campaign]:
        """Full-text search over campaign copy. Best-effort: failures yield []."""
        match = _fts_query(query)
        if not match:
            return []
        clauses, params = _filter_clauses(ActiveFilterSet(channel=channels or None), fields=("channel",))
        sql = f"""
            SELECT c.* FROM (
                SELECT campaign_id, bm25(campaigns_fts) AS score
                FROM campaigns_fts
                WHERE campaigns_fts MATCH ?
            ) f
            JOIN campaigns c ON c.id = f.campaign_id
            WHERE {_where(clauses)}
            ORDER BY f.score
            LIMIT ?
        """
        try:
            rows = await self._fetch(sql, [match, *params, limit])
            return [_row_to_campaign(r) for r in rows]
        except (StoreError, ValidationError) as e:
            logger.warning(f"Full-text search failed, returning no results: {e}")
            return []

    async def offer_search(
        self, query: str, filters: ActiveFilterSet | None = None, limit: int = 50
    ) -> list[Campaign]:
        """Campaigns whose offer contains `query` (case-insensitive). Failures yield []."""
        clauses, params = _filter_clauses(filters)
        sql = (
            "SELECT c.* FROM campaigns c "
            f"WHERE c.offer IS NOT NULL AND instr(casefold(c.offer), casefold(?)) > 0 AND {_where(clauses)} "
            f"{_ORDER_RECENT} LIMIT ?"
        )
        try:
            rows = await self._fetch(sql, [query, *params, limit])
            return [_row_to_campaign(r) for r in rows]
        except (StoreError, ValidationError) as e:
            logger.warning(f"Offer search failed, returning no results: {e}")
            return []
