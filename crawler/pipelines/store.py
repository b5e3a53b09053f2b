"""
Relational storage for normalized IPO news records, keyed by source link.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import ArgumentError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from crawler.infra.security import redact_secrets
from crawler.pipelines.dedupe import dedupe_by_key
from crawler.schemas.models import SCHEDULE_SENTINEL, NormalizedRecord, RecordInput

logger = logging.getLogger(__name__)

metadata = MetaData()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ipo_news_table = Table(
    "ipo_news",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(500), nullable=False),
    Column("summary", Text, nullable=False),
    Column("schedule", String(500), nullable=True),
    Column("keywords", String(500), nullable=True),
    Column("link", String(2048), nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow, index=True),
)

SCHEDULE_KINDS = {
    "demand": ("수요예측", "수요"),
    "subscription": ("청약",),
    "listing": ("상장",),
}
_UNAVAILABLE_MARKERS = (
    "no such table",
    "does not exist",
    "unable to open",
    "could not connect",
    "connection refused",
    "authentication failed",
    "server closed the connection",
)
_TITLE_NAME = re.compile(r"^([가-힣a-zA-Z0-9\s]+?)\s*(공모주|청약|상장|IPO)")


class StoreUnavailableError(Exception):
    """The store is unreachable or misconfigured; nothing can be persisted."""


class RecordRejectedError(Exception):
    """A single record write was refused; other records may still succeed."""


class Store:
    """
    Upsert gateway over the ``ipo_news`` table.

    ``upsert`` is a single ``INSERT ... ON CONFLICT(link) DO UPDATE`` on SQLite
    and PostgreSQL, so concurrent writers for the same link cannot create
    duplicates. ``id`` and ``created_at`` are never touched on update.
    """

    def __init__(self, database_url: str = "sqlite:///ipo_news.db") -> None:
        self.database_url = database_url
        self.engine: Optional[Engine] = None
        self._config_error: Optional[str] = None
        self._schema_ready = False
        try:
            self.engine = create_engine(database_url, future=True, **_engine_options(database_url))
        except (ArgumentError, ImportError, ValueError) as exc:
            self._config_error = f"invalid database URL: {redact_secrets(str(exc))}"
            logger.error("Store misconfigured: %s", self._config_error)

    def ping(self) -> None:
        """
        Verify the store is reachable and the table exists.

        Raises:
            StoreUnavailableError: the batch must not start.
        """
        engine = self._require_engine()
        try:
            with engine.connect() as conn:
                conn.execute(select(ipo_news_table.c.id).limit(1))
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"store unreachable: {redact_secrets(str(exc))}") from exc

    def upsert(self, record: RecordInput) -> NormalizedRecord:
        """
        Insert the record, or update title/summary/schedule/keywords of the row with the same link.

        A ``None`` schedule or keywords value keeps whatever the row already holds.

        Raises:
            StoreUnavailableError: the store went away or the table is missing.
            RecordRejectedError: this record was refused.
        """
        engine = self._require_engine()
        values = {
            "title": record.title,
            "summary": record.summary,
            "schedule": record.schedule,
            "keywords": record.keywords,
            "link": record.link,
        }
        try:
            with engine.begin() as conn:
                self._write(conn, values)
                row = conn.execute(
                    select(ipo_news_table).where(ipo_news_table.c.link == record.link)
                ).mappings().one()
        except OperationalError as exc:
            message = redact_secrets(str(exc))
            if any(marker in message.lower() for marker in _UNAVAILABLE_MARKERS):
                raise StoreUnavailableError(message) from exc
            raise RecordRejectedError(message) from exc
        except SQLAlchemyError as exc:
            raise RecordRejectedError(redact_secrets(str(exc))) from exc
        return _row_to_record(row)

    def _write(self, conn: Connection, values: Mapping[str, Any]) -> None:
        dialect = conn.dialect.name
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        elif dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            self._write_portable(conn, values)
            return

        table = ipo_news_table
        stmt = insert(table).values(**values, created_at=_utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=["link"],
            set_={
                "title": stmt.excluded.title,
                "summary": stmt.excluded.summary,
                "schedule": func.coalesce(stmt.excluded.schedule, table.c.schedule),
                "keywords": func.coalesce(stmt.excluded.keywords, table.c.keywords),
            },
        )
        conn.execute(stmt)

    def _write_portable(self, conn: Connection, values: Mapping[str, Any]) -> None:
        # Dialects without ON CONFLICT: row lock + branch inside the caller's transaction.
        table = ipo_news_table
        existing = conn.execute(
            select(table.c.id).where(table.c.link == values["link"]).with_for_update()
        ).first()
        if existing is None:
            conn.execute(table.insert().values(**values))
            return
        updates = {key: value for key, value in values.items() if key != "link" and value is not None}
        conn.execute(table.update().where(table.c.link == values["link"]).values(**updates))

    def get(self, record_id: int) -> Optional[NormalizedRecord]:
        stmt = select(ipo_news_table).where(ipo_news_table.c.id == record_id)
        rows = self._fetch(stmt)
        return rows[0] if rows else None

    def get_by_link(self, link: str) -> Optional[NormalizedRecord]:
        rows = self._fetch(select(ipo_news_table).where(ipo_news_table.c.link == link))
        return rows[0] if rows else None

    def count(self) -> int:
        engine = self._require_engine()
        try:
            with engine.connect() as conn:
                return int(conn.execute(select(func.count()).select_from(ipo_news_table)).scalar_one())
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(redact_secrets(str(exc))) from exc

    def recent(self, limit: int = 10) -> List[NormalizedRecord]:
        stmt = (
            select(ipo_news_table)
            .order_by(ipo_news_table.c.created_at.desc(), ipo_news_table.c.id.desc())
            .limit(limit)
        )
        return self._fetch(stmt)

    def scheduled(self, kind: Optional[str] = None) -> List[NormalizedRecord]:
        """Records carrying a real schedule, optionally narrowed to demand/subscription/listing."""
        table = ipo_news_table
        stmt = select(table).where(table.c.schedule.is_not(None), table.c.schedule != SCHEDULE_SENTINEL)
        markers = SCHEDULE_KINDS.get(kind or "")
        if markers:
            stmt = stmt.where(or_(*(table.c.schedule.contains(marker) for marker in markers)))
        stmt = stmt.order_by(table.c.created_at.desc(), table.c.id.desc())
        return self._fetch(stmt)

    def related(self, record: NormalizedRecord, limit: int = 5) -> List[NormalizedRecord]:
        table = ipo_news_table
        stmt = select(table).where(table.c.id != record.id)
        name = (record.title or "").strip()
        if name and name != SCHEDULE_SENTINEL:
            pattern = f"%{name}%"
            stmt = stmt.where(or_(table.c.title.ilike(pattern), table.c.summary.ilike(pattern)))
        stmt = stmt.order_by(table.c.created_at.desc(), table.c.id.desc()).limit(limit)
        return self._fetch(stmt)

    def suggest(self, query: str = "", limit: int = 10) -> List[str]:
        """Autocomplete stock names drawn from stored titles and keywords."""
        table = ipo_news_table
        stmt = select(table)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(table.c.title.ilike(pattern), table.c.keywords.ilike(pattern)))
        stmt = stmt.order_by(table.c.created_at.desc()).limit(20)

        names: List[str] = []
        for record in self._fetch(stmt):
            title = record.title.strip()
            match = _TITLE_NAME.match(title)
            if match:
                names.append(match.group(1).strip())
            elif title != SCHEDULE_SENTINEL:
                names.append(title)
            for keyword in (record.keywords or "").split(","):
                keyword = keyword.strip()
                if "공모주" in keyword or "청약" in keyword:
                    continue
                names.append(keyword)

        lowered = query.lower()
        candidates = [
            name for name in names if 2 <= len(name) <= 20 and (not lowered or lowered in name.lower())
        ]
        return dedupe_by_key(candidates, key_fn=lambda name: name)[:limit]

    def _fetch(self, stmt) -> List[NormalizedRecord]:
        engine = self._require_engine()
        try:
            with engine.connect() as conn:
                return [_row_to_record(row) for row in conn.execute(stmt).mappings()]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(redact_secrets(str(exc))) from exc

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise StoreUnavailableError(self._config_error or "store not configured")
        if not self._schema_ready:
            try:
                metadata.create_all(self.engine)
            except SQLAlchemyError as exc:
                raise StoreUnavailableError(f"store unreachable: {redact_secrets(str(exc))}") from exc
            self._schema_ready = True
        return self.engine


def _engine_options(database_url: str) -> dict:
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {}


def _row_to_record(row: Mapping[str, Any]) -> NormalizedRecord:
    return NormalizedRecord(
        id=row["id"],
        title=row["title"],
        summary=row["summary"],
        schedule=row["schedule"],
        keywords=row["keywords"],
        link=row["link"],
        created_at=row["created_at"],
    )
