"""Local market cache: SQLite via SQLAlchemy Core, expiring after a TTL.

Usage:
    cache = MarketCache(store.cache_path, ttl_sec=cfg.cache_ttl_sec)
    cache.store_markets(service.fetch_all_markets())
    cache.cached_markets("bitcoin")
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Iterable

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from pmarket.models import Market

log = logging.getLogger("pm.cache")

LAST_REFRESH_KEY = "last_full_refresh"

metadata = MetaData()

markets = Table(
    "markets",
    metadata,
    Column("condition_id", String(120), primary_key=True),
    Column("question", Text),
    Column("description", Text),
    Column("category", String(120)),
    Column("end_date_iso", String(40)),
    Column("active", Integer),
    Column("closed", Integer),
    Column("yes_token_id", String(120)),
    Column("no_token_id", String(120)),
    Column("yes_outcome", String(40)),
    Column("no_outcome", String(40)),
    Column("cached_at", Float),
    Index("ix_markets_question", "question"),
    Index("ix_markets_active", "active", "closed"),
)

cache_metadata = Table(
    "cache_metadata",
    metadata,
    Column("key", String(50), primary_key=True),
    Column("value", Text),
)


def _humanize_age(seconds: float) -> str:
    minutes = int(seconds // 60)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if minutes > 0:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    return "just now"


class MarketCache:
    def __init__(
        self,
        db_path: Path | str,
        ttl_sec: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        url = str(db_path) if str(db_path).startswith("sqlite") else f"sqlite:///{db_path}"
        self._engine = create_engine(url)
        self._ttl = ttl_sec
        self._clock = clock
        metadata.create_all(self._engine)
        log.debug("CACHE │ opened %s", url)

    def _last_refresh(self) -> float | None:
        q = select(cache_metadata.c.value).where(cache_metadata.c.key == LAST_REFRESH_KEY)
        with self._engine.connect() as conn:
            value = conn.execute(q).scalar_one_or_none()
        return float(value) if value is not None else None

    def is_valid(self) -> bool:
        last = self._last_refresh()
        return last is not None and self._clock() - last < self._ttl

    def cached_markets(self, text_filter: str | None = None) -> list[Market]:
        """Active, open markets whose question contains *text_filter* (case-insensitive)."""
        q = select(markets).where(markets.c.active == 1, markets.c.closed == 0)
        if text_filter:
            q = q.where(func.lower(markets.c.question).like(f"%{text_filter.lower()}%"))
        with self._engine.connect() as conn:
            rows = conn.execute(q).mappings().all()
        return [
            Market(
                condition_id=r["condition_id"],
                question=r["question"] or "",
                description=r["description"] or "",
                category=r["category"] or "",
                end_date_iso=r["end_date_iso"] or "",
                active=bool(r["active"]),
                closed=bool(r["closed"]),
                yes_token_id=r["yes_token_id"] or "",
                no_token_id=r["no_token_id"] or "",
                yes_outcome=r["yes_outcome"] or "Yes",
                no_outcome=r["no_outcome"] or "No",
            )
            for r in rows
        ]

    def store_markets(self, items: Iterable[Market]) -> int:
        """Upsert *items* and stamp the refresh time. Returns rows written."""
        now = self._clock()
        rows = [
            {
                "condition_id": m.condition_id,
                "question": m.question,
                "description": m.description,
                "category": m.category,
                "end_date_iso": m.end_date_iso,
                "active": int(m.active),
                "closed": int(m.closed),
                "yes_token_id": m.yes_token_id,
                "no_token_id": m.no_token_id,
                "yes_outcome": m.yes_outcome,
                "no_outcome": m.no_outcome,
                "cached_at": now,
            }
            for m in items
            if m.condition_id
        ]

        with self._engine.begin() as conn:
            if rows:
                stmt = sqlite_insert(markets)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[markets.c.condition_id],
                    set_={c.name: stmt.excluded[c.name] for c in markets.c if c.name != "condition_id"},
                )
                conn.execute(stmt, rows)
            meta = sqlite_insert(cache_metadata).values(key=LAST_REFRESH_KEY, value=str(now))
            conn.execute(meta.on_conflict_do_update(
                index_elements=[cache_metadata.c.key], set_={"value": meta.excluded.value},
            ))
        log.info("CACHE │ stored %d markets", len(rows))
        return len(rows)

    def clear(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(markets))
            conn.execute(delete(cache_metadata))

    def market_count(self) -> int:
        with self._engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(markets)).scalar_one()

    def has_cache(self) -> bool:
        return self.market_count() > 0

    def cache_age(self) -> str | None:
        last = self._last_refresh()
        if last is None:
            return None
        return _humanize_age(self._clock() - last)

    def close(self) -> None:
        self._engine.dispose()
