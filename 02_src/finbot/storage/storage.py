"""SQLite record store for expenses, attachments and trace events."""

import json
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import (
    DEFAULT_CATEGORY,
    MAX_RECEIPT_CANDIDATES,
    NOT_APPLICABLE,
    VALUE_TOLERANCE,
    resolve_db_path,
)
from ..errors import PersistenceError
from ..logging_config import get_logger
from ..models import (
    CategoryTotal,
    Expense,
    ExpenseCandidate,
    ExpenseDraft,
    ReceiptCriteria,
    ReportPeriod,
    TraceEvent,
)

logger = get_logger(__name__)


class IStorage(Protocol):
    """Persistent record store (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Expenses
    async def create_expense(
        self,
        conversation_id: str,
        draft: ExpenseDraft,
        attachment_refs: list[str] | None = None,
    ) -> int:
        """Persist a completed draft with its attachments. Returns the record id."""
        ...

    async def query_expenses(
        self, conversation_id: str, period: ReportPeriod
    ) -> list[Expense]:
        """Expenses in a period, ordered by date."""
        ...

    async def query_aggregate_by_category(
        self, conversation_id: str, period: ReportPeriod
    ) -> list[CategoryTotal]:
        """Spend per category in a period, largest first."""
        ...

    async def find_expenses(
        self, conversation_id: str, criteria: ReceiptCriteria
    ) -> list[ExpenseCandidate]:
        """Expenses matching criteria, oldest first, at most 10."""
        ...

    async def get_attachments(self, record_id: int) -> list[str]:
        """Attachment refs stored for an expense."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


def _period_bounds(period: ReportPeriod, today: date) -> tuple[date, date] | None:
    """Half-open [start, end) date window, or None for all-time."""
    first_of_month = today.replace(day=1)
    if period == ReportPeriod.MONTH:
        next_month = (first_of_month + timedelta(days=32)).replace(day=1)
        return first_of_month, next_month
    if period == ReportPeriod.TODAY:
        return today, today + timedelta(days=1)
    if period == ReportPeriod.YESTERDAY:
        return today - timedelta(days=1), today
    if period == ReportPeriod.LAST_MONTH:
        previous_month = (first_of_month - timedelta(days=1)).replace(day=1)
        return previous_month, first_of_month
    return None


def parse_expense_date(raw: str | None, today: date) -> date | None:
    """Parse "today", "yesterday", ISO or DD/MM/YYYY dates."""
    if not raw:
        return None
    text = raw.strip().lower()
    if text in ("today", "hoje"):
        return today
    if text in ("yesterday", "ontem"):
        return today - timedelta(days=1)
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d/%m/%Y").date()
    except ValueError:
        return None


def _parse_timestamp(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.execute("PRAGMA foreign_keys = ON")

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Expenses
    async def create_expense(
        self,
        conversation_id: str,
        draft: ExpenseDraft,
        attachment_refs: list[str] | None = None,
    ) -> int:
        """Persist a completed draft with its attachments."""
        conn = self._require_conn()

        if (
            not isinstance(draft.value, (int, float))
            or draft.value <= 0
            or not draft.item
            or not draft.payment_method
        ):
            raise PersistenceError("Draft is missing value, item or payment method")

        today = date.today()
        expense_date = parse_expense_date(draft.date, today)
        if expense_date is None:
            logger.warning(
                "[%s] Invalid expense date %r, using today", conversation_id, draft.date
            )
            expense_date = today

        refs = attachment_refs if attachment_refs is not None else draft.attachment_refs

        try:
            cursor = await conn.execute(
                """
                INSERT INTO expenses
                (conversation_id, created_at, expense_date, category, value,
                 establishment, payment_method, item, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    datetime.now(timezone.utc).isoformat(),
                    expense_date.isoformat(),
                    draft.category or DEFAULT_CATEGORY,
                    float(draft.value),
                    draft.establishment or NOT_APPLICABLE,
                    draft.payment_method,
                    draft.item,
                    draft.notes or None,
                ),
            )
            expense_id = cursor.lastrowid

            for ref in refs:
                await conn.execute(
                    "INSERT INTO expense_attachments (expense_id, ref) VALUES (?, ?)",
                    (expense_id, ref),
                )

            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise PersistenceError(f"Could not save expense: {e}") from e

        logger.info(
            "[%s] Expense %s saved with %s attachment(s)",
            conversation_id,
            expense_id,
            len(refs),
        )
        return expense_id

    async def query_expenses(
        self, conversation_id: str, period: ReportPeriod
    ) -> list[Expense]:
        """Expenses in a period, ordered by date then id."""
        conn = self._require_conn()

        conditions = ["conversation_id = ?"]
        params: list = [conversation_id]
        bounds = _period_bounds(period, date.today())
        if bounds:
            conditions.append("date(expense_date) >= date(?) AND date(expense_date) < date(?)")
            params.extend(bound.isoformat() for bound in bounds)

        cursor = await conn.execute(
            f"""
            SELECT id, conversation_id, expense_date, category, value,
                   establishment, payment_method, item, notes, created_at,
                   EXISTS (
                       SELECT 1 FROM expense_attachments a
                       WHERE a.expense_id = expenses.id
                   )
            FROM expenses
            WHERE {' AND '.join(conditions)}
            ORDER BY expense_date ASC, id ASC
            """,
            params,
        )
        rows = await cursor.fetchall()

        return [
            Expense(
                id=row[0],
                conversation_id=row[1],
                expense_date=row[2],
                category=row[3],
                value=row[4],
                establishment=row[5],
                payment_method=row[6],
                item=row[7],
                notes=row[8],
                created_at=_parse_timestamp(row[9]),
                has_attachment=bool(row[10]),
            )
            for row in rows
        ]

    async def query_aggregate_by_category(
        self, conversation_id: str, period: ReportPeriod
    ) -> list[CategoryTotal]:
        """Spend per category in a period, largest total first."""
        conn = self._require_conn()

        conditions = ["conversation_id = ?"]
        params: list = [conversation_id]
        bounds = _period_bounds(period, date.today())
        if bounds:
            conditions.append("date(expense_date) >= date(?) AND date(expense_date) < date(?)")
            params.extend(bound.isoformat() for bound in bounds)

        cursor = await conn.execute(
            f"""
            SELECT category, SUM(value) AS total
            FROM expenses
            WHERE {' AND '.join(conditions)}
            GROUP BY category
            ORDER BY total DESC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [CategoryTotal(category=row[0], total=row[1]) for row in rows]

    async def find_expenses(
        self, conversation_id: str, criteria: ReceiptCriteria
    ) -> list[ExpenseCandidate]:
        """Expenses matching criteria, oldest first, at most 10."""
        conn = self._require_conn()

        conditions = []
        params: list = [conversation_id]

        if criteria.item:
            conditions.append("item LIKE ?")
            params.append(f"%{criteria.item}%")
        if criteria.value:
            conditions.append("value BETWEEN ? AND ?")
            params.extend(
                (
                    criteria.value * (1 - VALUE_TOLERANCE),
                    criteria.value * (1 + VALUE_TOLERANCE),
                )
            )
        if criteria.establishment:
            conditions.append("establishment LIKE ?")
            params.append(f"%{criteria.establishment}%")
        if criteria.date:
            day = parse_expense_date(criteria.date, date.today())
            if day:
                conditions.append("date(expense_date) = date(?)")
                params.append(day.isoformat())
        if criteria.category:
            conditions.append("category = ? COLLATE NOCASE")
            params.append(criteria.category)

        if not conditions:
            logger.info("[%s] No usable search criteria", conversation_id)
            return []

        params.append(MAX_RECEIPT_CANDIDATES)
        cursor = await conn.execute(
            f"""
            SELECT id, item, value, expense_date, created_at
            FROM expenses
            WHERE conversation_id = ? AND {' AND '.join(conditions)}
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            params,
        )
        rows = await cursor.fetchall()

        return [
            ExpenseCandidate(
                id=row[0],
                item=row[1],
                value=row[2],
                expense_date=row[3],
                created_at=_parse_timestamp(row[4]),
            )
            for row in rows
        ]

    async def get_attachments(self, record_id: int) -> list[str]:
        """Attachment refs stored for an expense."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "SELECT ref FROM expense_attachments WHERE expense_id = ? ORDER BY id ASC",
            (record_id,),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, ensure_ascii=False, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters, newest first."""
        conn = self._require_conn()

        conditions = []
        params: list = []

        if after:
            if after.tzinfo is None:
                after = after.replace(tzinfo=timezone.utc)
            conditions.append("timestamp > ?")
            params.append(after.isoformat())
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_parse_timestamp(row[4]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        for table in ("expense_attachments", "expenses", "trace_events"):
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
