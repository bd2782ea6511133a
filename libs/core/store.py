from __future__ import annotations

import inspect
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import JSON, DateTime, ForeignKey, String, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .catalogs import COMPONENT_PURPOSES
from .errors import RecordNotFoundError, StoreError, TransactionClosedError
from .events import STORE_AFTER_COMMIT_FAILED
from .logging import get_logger, log_event
from .models import ContentTypeDefinition, FieldDefinition, RelationshipDefinition, ReusableComponent

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class WebsiteRecord(Base):
    __tablename__ = "websites"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    category: Mapped[str] = mapped_column(String, default="general")
    description: Mapped[str] = mapped_column(String, default="")
    business_requirements: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class ContentTypeRecord(Base):
    __tablename__ = "content_types"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    website_id: Mapped[str] = mapped_column(ForeignKey("websites.id"))
    name: Mapped[str] = mapped_column(String)
    category: Mapped[str] = mapped_column(String, default="page")
    fields: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    relationships: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class ContentItemRecord(Base):
    __tablename__ = "content_items"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    website_id: Mapped[str] = mapped_column(ForeignKey("websites.id"))
    content_type_id: Mapped[str] = mapped_column(ForeignKey("content_types.id"))
    slug: Mapped[str | None] = mapped_column(String, nullable=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    status: Mapped[str] = mapped_column(String, default="draft")
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


RECORD_KINDS: Dict[str, Type[Base]] = {
    "website": WebsiteRecord,
    "content_type": ContentTypeRecord,
    "content_item": ContentItemRecord,
}

_COLUMN_RENAMES = {"metadata": "metadata_json"}


def _record_class(kind: str) -> Type[Base]:
    try:
        return RECORD_KINDS[kind]
    except KeyError as exc:
        raise StoreError(f"unknown record kind: {kind}") from exc


def _to_attributes(values: Dict[str, Any]) -> Dict[str, Any]:
    return {_COLUMN_RENAMES.get(key, key): value for key, value in values.items()}


def _filtered(query: Any, record_cls: Type[Base], filters: Dict[str, Any]) -> Any:
    for key, value in _to_attributes(filters).items():
        query = query.where(getattr(record_cls, key) == value)
    return query


def record_to_dict(record: Base) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for column in record.__table__.columns:
        attribute = _COLUMN_RENAMES.get(column.name, column.name)
        payload[column.name] = getattr(record, attribute)
    return payload


class TransactionHandle:
    """CRUD access bound to one open transaction scope."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._closed = False
        self.rollback_only = False
        self._after_commit: List[Callable[[], Any]] = []

    @property
    def active(self) -> bool:
        return not self._closed

    def _require_session(self) -> Session:
        if self._closed:
            raise TransactionClosedError("transaction handle used after its scope ended")
        return self._session

    def mark_rollback_only(self) -> None:
        self._require_session()
        self.rollback_only = True

    def after_commit(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` once the scope commits; dropped on rollback."""
        self._require_session()
        self._after_commit.append(callback)

    def pending_callbacks(self) -> List[Callable[[], Any]]:
        return list(self._after_commit)

    def create(self, kind: str, **values: Any) -> Dict[str, Any]:
        session = self._require_session()
        record_cls = _record_class(kind)
        now = datetime.utcnow()
        attributes = _to_attributes(values)
        attributes.setdefault("id", str(uuid.uuid4()))
        attributes.setdefault("created_at", now)
        attributes.setdefault("updated_at", now)
        record = record_cls(**attributes)
        session.add(record)
        session.flush()
        return record_to_dict(record)

    def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        session = self._require_session()
        record = session.get(_record_class(kind), record_id)
        return record_to_dict(record) if record is not None else None

    def update(self, kind: str, record_id: str, **changes: Any) -> Dict[str, Any]:
        session = self._require_session()
        record = session.get(_record_class(kind), record_id)
        if record is None:
            raise RecordNotFoundError(kind, record_id)
        for key, value in _to_attributes(changes).items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        session.flush()
        return record_to_dict(record)

    def delete(self, kind: str, record_id: str) -> bool:
        session = self._require_session()
        record = session.get(_record_class(kind), record_id)
        if record is None:
            return False
        session.delete(record)
        session.flush()
        return True

    def find(
        self,
        kind: str,
        *,
        order_by: str = "created_at",
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
        **filters: Any,
    ) -> List[Dict[str, Any]]:
        session = self._require_session()
        record_cls = _record_class(kind)
        query = _filtered(select(record_cls), record_cls, filters)
        column = getattr(record_cls, _COLUMN_RENAMES.get(order_by, order_by))
        query = query.order_by(column.desc() if descending else column, record_cls.id)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [record_to_dict(record) for record in session.scalars(query)]

    def count(self, kind: str, **filters: Any) -> int:
        session = self._require_session()
        record_cls = _record_class(kind)
        query = _filtered(select(func.count()).select_from(record_cls), record_cls, filters)
        return int(session.scalar(query) or 0)

    def close(self) -> None:
        self._closed = True


class SqlStore:
    """Transactional persistence capability backed by SQLAlchemy.

    ``with_transaction(fn)`` awaits ``fn(handle)`` and commits on normal
    return; it rolls back when ``fn`` raises (cancellation included) or when
    the handle was marked rollback-only. The handle is closed on every path,
    and callbacks registered with ``handle.after_commit`` run only after a
    successful commit. Callback failures are logged and never raised.
    """

    def __init__(
        self,
        url: str = "sqlite+pysqlite:///:memory:",
        *,
        engine: Engine | None = None,
        create_schema: bool = True,
    ) -> None:
        self.engine = engine or _build_engine(url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._logger = get_logger("store")
        if create_schema:
            Base.metadata.create_all(bind=self.engine)

    async def with_transaction(self, fn: Callable[[TransactionHandle], Awaitable[T]]) -> T:
        session = self._session_factory()
        handle = TransactionHandle(session)
        committed = False
        try:
            result = await fn(handle)
            if handle.rollback_only:
                session.rollback()
            else:
                session.commit()
                committed = True
        except BaseException:
            session.rollback()
            raise
        finally:
            handle.close()
            session.close()
        if committed:
            await self._run_after_commit(handle.pending_callbacks())
        return result

    async def _run_after_commit(self, callbacks: List[Callable[[], Any]]) -> None:
        # Runs after commit; callback errors are logged, not raised.
        for callback in callbacks:
            try:
                outcome = callback()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                log_event(
                    self._logger,
                    STORE_AFTER_COMMIT_FAILED,
                    {"callback": getattr(callback, "__qualname__", repr(callback)), "error": str(exc)},
                )

    async def read(self, fn: Callable[[TransactionHandle], T]) -> T:
        async def _read(handle: TransactionHandle) -> T:
            handle.mark_rollback_only()
            return fn(handle)

        return await self.with_transaction(_read)


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite") and ":memory:" in url:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


class StoreTypeCatalog:
    """Existing-content-type catalog read from a ``SqlStore``."""

    def __init__(self, store: SqlStore) -> None:
        self.store = store

    async def load_content_types(self, website_id: str) -> List[ContentTypeDefinition]:
        rows = await self.store.read(
            lambda handle: handle.find("content_type", order_by="name", website_id=website_id)
        )
        return [content_type_from_row(row) for row in rows]

    async def load_reusable_components(self, website_id: str) -> List[ReusableComponent]:
        rows = await self.store.read(
            lambda handle: handle.find(
                "content_type", order_by="name", website_id=website_id, category="component"
            )
        )
        return components_from_rows(rows)


def components_from_rows(rows: Iterable[Dict[str, Any]]) -> List[ReusableComponent]:
    components: List[ReusableComponent] = []
    for row in rows:
        if row.get("category") != "component":
            continue
        settings = row.get("settings") or {}
        purpose = settings.get("description") or COMPONENT_PURPOSES.get(
            row["name"], f"{row['name']} content type"
        )
        components.append(ReusableComponent(name=row["name"], purpose=purpose))
    return components


def content_type_from_row(row: Dict[str, Any]) -> ContentTypeDefinition:
    fields = [
        FieldDefinition.model_validate(field)
        for field in row.get("fields") or []
        if isinstance(field, dict) and "name" in field and "type" in field
    ]
    relationships = [
        RelationshipDefinition.model_validate(rel)
        for rel in row.get("relationships") or []
        if isinstance(rel, dict)
    ]
    return ContentTypeDefinition(
        name=row["name"],
        category=row.get("category") or "page",
        fields=fields,
        relationships=relationships or None,
    )
