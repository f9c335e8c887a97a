# document_store.py — Transactional key/document store over one shared table
#
# Capabilities the rest of the CRM relies on:
# - get / put / query / update / delete of items addressed by (PK, SK)
# - conditional put (create-if-absent), the only uniqueness primitive
# - atomic list append: one INSERT ... SELECT per element, never read-modify-write
# - multi-item transactions that either fully apply or leave no trace

import logging
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import JSON, DateTime, MetaData, String, delete, insert, literal, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from config import Settings
from database import build_engine, init_db, close_db
from models import define_tables, utcnow

logger = logging.getLogger("pulse-crm.store")

# Same ceiling as the managed document stores this layout mirrors
MAX_TRANSACT_ITEMS = 25


# ============================================================
# ERRORS
# ============================================================

class StoreError(Exception):
    pass


class ConditionalCheckFailed(StoreError):
    def __init__(self, pk: str, sk: str):
        self.pk = pk
        self.sk = sk
        super().__init__(f"Conditional check failed for {pk} / {sk}")


class ItemNotFound(StoreError):
    def __init__(self, pk: str, sk: str):
        self.pk = pk
        self.sk = sk
        super().__init__(f"Item {pk} / {sk} does not exist")


class TransactionCanceled(StoreError):
    """A transaction was rolled back; which item failed is deliberately not exposed"""


# ============================================================
# TRANSACTION OPERATIONS
# ============================================================

@dataclass
class Put:
    item: Dict[str, Any]
    if_not_exists: bool = False


@dataclass
class Update:
    pk: str
    sk: str
    updates: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Delete:
    pk: str
    sk: str


@dataclass
class ConditionCheck:
    pk: str
    sk: str
    must_exist: bool = True


TransactItem = Union[Put, Update, Delete, ConditionCheck]


# ============================================================
# STORE
# ============================================================

class DocumentStore:
    def __init__(self, engine: AsyncEngine, table_name: str):
        self.engine = engine
        self.table_name = table_name
        self.metadata = MetaData()
        self.items, self.list_entries = define_tables(self.metadata, table_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentStore":
        return cls(build_engine(settings), settings.table_name)

    async def create_tables(self) -> None:
        await init_db(self.engine, self.metadata)

    async def dispose(self) -> None:
        await close_db(self.engine)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    # --- Reads ---

    async def get_item(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        async with self.engine.connect() as conn:
            row = (await conn.execute(
                select(self.items.c.data).where(
                    self.items.c.pk == pk, self.items.c.sk == sk,
                )
            )).first()
            if row is None:
                return None
            lists = await self._load_lists(conn, pk, sk=sk)
        return self._compose(pk, sk, row.data, lists.get(sk))

    async def query(
        self,
        pk: str,
        sk_prefix: str = "",
        projection: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """All items in a partition, optionally narrowed to a sort-key prefix, in insertion order"""
        stmt = select(self.items.c.sk, self.items.c.data).where(self.items.c.pk == pk)
        if sk_prefix:
            stmt = stmt.where(self.items.c.sk.startswith(sk_prefix, autoescape=True))
        stmt = stmt.order_by(self.items.c.id)

        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
            lists = await self._load_lists(conn, pk, sk_prefix=sk_prefix) if rows else {}

        results = []
        for row in rows:
            item = self._compose(pk, row.sk, row.data, lists.get(row.sk))
            if projection is not None:
                item = {name: item[name] for name in projection if name in item}
            results.append(item)
        return results

    # --- Single-item writes ---

    async def put_item(self, item: Dict[str, Any], if_not_exists: bool = False) -> None:
        async with self.engine.begin() as conn:
            await self._put(conn, Put(item, if_not_exists))

    async def update_item(self, pk: str, sk: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Set attributes on an existing item; raises ItemNotFound instead of creating one"""
        async with self.engine.begin() as conn:
            return await self._update(conn, Update(pk, sk, updates))

    async def append_to_list(self, pk: str, sk: str, attribute: str, values: Sequence[Any]) -> None:
        """Atomically append values to a list attribute of an existing item.

        Each element is one INSERT ... SELECT guarded by the item's existence,
        so concurrent appends never overwrite each other.
        """
        guard = select(self.items.c.id).where(
            self.items.c.pk == pk, self.items.c.sk == sk,
        ).exists()
        columns = ["pk", "sk", "attribute", "value", "created_at"]

        async with self.engine.begin() as conn:
            for value in values:
                source = select(
                    literal(pk, String()),
                    literal(sk, String()),
                    literal(attribute, String()),
                    literal(value, JSON()),
                    literal(utcnow(), DateTime(timezone=True)),
                ).where(guard)
                result = await conn.execute(
                    insert(self.list_entries).from_select(columns, source)
                )
                if result.rowcount == 0:
                    raise ItemNotFound(pk, sk)

    async def delete_item(self, pk: str, sk: str) -> None:
        """Unconditional delete; deleting a missing item is not an error"""
        async with self.engine.begin() as conn:
            await self._delete(conn, Delete(pk, sk))

    # --- Transactions ---

    async def transact_write(self, operations: Sequence[TransactItem]) -> None:
        """Apply every operation or none of them"""
        if not operations:
            return
        if len(operations) > MAX_TRANSACT_ITEMS:
            raise ValueError(
                f"A transaction accepts at most {MAX_TRANSACT_ITEMS} items, got {len(operations)}"
            )

        try:
            async with self.engine.begin() as conn:
                for op in operations:
                    if isinstance(op, Put):
                        await self._put(conn, op)
                    elif isinstance(op, Update):
                        await self._update(conn, op)
                    elif isinstance(op, Delete):
                        await self._delete(conn, op)
                    elif isinstance(op, ConditionCheck):
                        await self._check(conn, op)
                    else:
                        raise TypeError(f"Unsupported transaction operation: {op!r}")
        except (ConditionalCheckFailed, ItemNotFound, IntegrityError) as exc:
            logger.info(f"Transaction canceled: {exc}")
            raise TransactionCanceled("Transaction cancelled") from exc

    # --- Internals ---

    def _insert(self, table):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise StoreError(f"Unsupported database dialect: {dialect}")

    @staticmethod
    def _split(item: Dict[str, Any]):
        data = dict(item)
        try:
            pk = data.pop("PK")
            sk = data.pop("SK")
        except KeyError:
            raise ValueError("Items must carry both PK and SK") from None
        return pk, sk, data

    @staticmethod
    def _compose(pk: str, sk: str, data: Dict[str, Any], lists: Optional[Dict[str, list]]) -> Dict[str, Any]:
        item = {"PK": pk, "SK": sk}
        item.update(data or {})
        for attribute, values in (lists or {}).items():
            item[attribute] = list(item.get(attribute) or []) + values
        return item

    async def _load_lists(
        self,
        conn: AsyncConnection,
        pk: str,
        sk: Optional[str] = None,
        sk_prefix: str = "",
    ) -> Dict[str, Dict[str, list]]:
        entries = self.list_entries
        stmt = select(entries.c.sk, entries.c.attribute, entries.c.value).where(entries.c.pk == pk)
        if sk is not None:
            stmt = stmt.where(entries.c.sk == sk)
        elif sk_prefix:
            stmt = stmt.where(entries.c.sk.startswith(sk_prefix, autoescape=True))
        stmt = stmt.order_by(entries.c.id)

        grouped: Dict[str, Dict[str, list]] = defaultdict(lambda: defaultdict(list))
        for row in (await conn.execute(stmt)).all():
            grouped[row.sk][row.attribute].append(row.value)
        return grouped

    async def _clear_lists(self, conn: AsyncConnection, pk: str, sk: str) -> None:
        await conn.execute(
            delete(self.list_entries).where(
                self.list_entries.c.pk == pk, self.list_entries.c.sk == sk,
            )
        )

    async def _put(self, conn: AsyncConnection, op: Put) -> None:
        pk, sk, data = self._split(op.item)
        now = utcnow()
        stmt = self._insert(self.items).values(
            pk=pk, sk=sk, data=data, created_at=now, updated_at=now,
        )
        if op.if_not_exists:
            result = await conn.execute(stmt.on_conflict_do_nothing(index_elements=["pk", "sk"]))
            if result.rowcount == 0:
                raise ConditionalCheckFailed(pk, sk)
            return

        # Full replace: previously appended list elements go with the old item
        await self._clear_lists(conn, pk, sk)
        await conn.execute(
            stmt.on_conflict_do_update(
                index_elements=["pk", "sk"],
                set_={"data": stmt.excluded.data, "updated_at": stmt.excluded.updated_at},
            )
        )

    async def _update(self, conn: AsyncConnection, op: Update) -> Dict[str, Any]:
        where = (self.items.c.pk == op.pk, self.items.c.sk == op.sk)
        # Write first so the row (or, on SQLite, the database) is locked before the read
        touched = await conn.execute(
            update(self.items).where(*where).values(updated_at=utcnow())
        )
        if touched.rowcount == 0:
            raise ItemNotFound(op.pk, op.sk)
        row = (await conn.execute(select(self.items.c.data).where(*where))).first()

        data = dict(row.data or {})
        data.update(op.updates)
        await conn.execute(update(self.items).where(*where).values(data=data))
        return self._compose(op.pk, op.sk, data, None)

    async def _delete(self, conn: AsyncConnection, op: Delete) -> None:
        await self._clear_lists(conn, op.pk, op.sk)
        await conn.execute(
            delete(self.items).where(self.items.c.pk == op.pk, self.items.c.sk == op.sk)
        )

    async def _check(self, conn: AsyncConnection, op: ConditionCheck) -> None:
        row = (await conn.execute(
            select(self.items.c.id).where(
                self.items.c.pk == op.pk, self.items.c.sk == op.sk,
            )
        )).first()
        if (row is not None) != op.must_exist:
            raise ConditionalCheckFailed(op.pk, op.sk)
