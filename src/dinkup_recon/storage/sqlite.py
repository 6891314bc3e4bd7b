"""
SQLite-backed ledger stores.

Each operation opens its own connection, so separate threads or processes
can ingest concurrently; settlement relies on a conditional UPDATE.
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Optional, Union
import json
import logging
import sqlite3

from ..models.transaction import (
    MatchMethod,
    Obligation,
    ObligationStatus,
    Transaction,
    TransactionType,
)
from ..utils.exceptions import DuplicateMatchError, PersistenceError, SettlementError
from .base import ObligationStore, TransactionStore

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS transactions (
      id TEXT PRIMARY KEY,
      transaction_type TEXT NOT NULL,
      amount TEXT NOT NULL,
      sender_name TEXT NOT NULL,
      recipient_name TEXT NOT NULL,
      note TEXT,
      correlation_tag TEXT,
      email_subject TEXT,
      email_from TEXT,
      transaction_date TEXT,
      raw_source TEXT,
      created_at TEXT NOT NULL,
      matched_obligation_id TEXT,
      match_method TEXT,
      review_required INTEGER NOT NULL DEFAULT 0,
      matched_at TEXT,
      processed INTEGER NOT NULL DEFAULT 0,
      seq INTEGER
    );
    """,
    # At most one tag match per obligation
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_tag_match
      ON transactions(matched_obligation_id) WHERE match_method = 'tag_match';
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_tag ON transactions(correlation_tag);",
    """
    CREATE TABLE IF NOT EXISTS obligations (
      id TEXT PRIMARY KEY,
      amount TEXT NOT NULL,
      owing_party TEXT NOT NULL,
      status TEXT NOT NULL,
      correlation_tag TEXT,
      session_id TEXT,
      paid_at TEXT,
      notes TEXT,
      candidate_transaction_ids TEXT NOT NULL DEFAULT '[]',
      seq INTEGER
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_obligations_tag ON obligations(correlation_tag);",
)


@contextmanager
def _connect(db_path: Path) -> Iterator[sqlite3.Connection]:
    con = sqlite3.connect(str(db_path), timeout=30)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA journal_mode=WAL;")
    try:
        yield con
        con.commit()
    except Exception:
        con.rollback()
        raise
    finally:
        con.close()


def init_db(db_path: Union[str, Path]) -> Path:
    """Create the ledger tables if needed and return the database path."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with _connect(path) as con:
        for statement in _SCHEMA:
            con.execute(statement)
    return path


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        transaction_type=TransactionType(row["transaction_type"]),
        amount=Decimal(row["amount"]),
        sender_name=row["sender_name"],
        recipient_name=row["recipient_name"],
        note=row["note"],
        correlation_tag=row["correlation_tag"],
        email_subject=row["email_subject"] or "",
        email_from=row["email_from"] or "",
        transaction_date=row["transaction_date"],
        raw_source=json.loads(row["raw_source"] or "{}"),
        created_at=datetime.fromisoformat(row["created_at"]),
        matched_obligation_id=row["matched_obligation_id"],
        match_method=MatchMethod(row["match_method"]) if row["match_method"] else None,
        review_required=bool(row["review_required"]),
        matched_at=_from_iso(row["matched_at"]),
        processed=bool(row["processed"]),
    )


def _row_to_obligation(row: sqlite3.Row) -> Obligation:
    return Obligation(
        id=row["id"],
        amount=Decimal(row["amount"]),
        owing_party=row["owing_party"],
        status=ObligationStatus(row["status"]),
        correlation_tag=row["correlation_tag"],
        session_id=row["session_id"],
        paid_at=_from_iso(row["paid_at"]),
        notes=row["notes"],
        candidate_transaction_ids=json.loads(row["candidate_transaction_ids"] or "[]"),
    )


class SqliteTransactionStore(TransactionStore):
    """Transaction ledger in a SQLite database file."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = init_db(db_path)

    def add(self, transaction: Transaction) -> None:
        try:
            with _connect(self.db_path) as con:
                con.execute(
                    """
                    INSERT INTO transactions(
                      id, transaction_type, amount, sender_name, recipient_name, note,
                      correlation_tag, email_subject, email_from, transaction_date,
                      raw_source, created_at, matched_obligation_id, match_method,
                      review_required, matched_at, processed, seq
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,
                      (SELECT COALESCE(MAX(seq), 0) + 1 FROM transactions))
                    """,
                    (
                        transaction.id,
                        transaction.transaction_type.value,
                        str(transaction.amount),
                        transaction.sender_name,
                        transaction.recipient_name,
                        transaction.note,
                        transaction.correlation_tag,
                        transaction.email_subject,
                        transaction.email_from,
                        transaction.transaction_date,
                        json.dumps(transaction.raw_source, default=str),
                        transaction.created_at.isoformat(),
                        transaction.matched_obligation_id,
                        transaction.match_method.value if transaction.match_method else None,
                        int(transaction.review_required),
                        _iso(transaction.matched_at),
                        int(transaction.processed),
                    ),
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to store transaction {transaction.id}: {e}")
            raise PersistenceError(f"Failed to store transaction {transaction.id}: {e}") from e

    def get(self, transaction_id: str) -> Optional[Transaction]:
        with _connect(self.db_path) as con:
            row = con.execute(
                "SELECT * FROM transactions WHERE id=?", (transaction_id,)
            ).fetchone()
        return _row_to_transaction(row) if row else None

    def list_all(self) -> list[Transaction]:
        with _connect(self.db_path) as con:
            rows = con.execute("SELECT * FROM transactions ORDER BY seq").fetchall()
        return [_row_to_transaction(row) for row in rows]

    def find_by_tag(self, correlation_tag: str) -> list[Transaction]:
        with _connect(self.db_path) as con:
            rows = con.execute(
                "SELECT * FROM transactions WHERE correlation_tag=? ORDER BY seq",
                (correlation_tag,),
            ).fetchall()
        return [_row_to_transaction(row) for row in rows]

    def attach_match(
        self,
        transaction_id: str,
        obligation_id: str,
        match_method: MatchMethod,
        review_required: bool,
        matched_at: Optional[datetime] = None,
    ) -> Transaction:
        matched_at = matched_at or datetime.now()
        try:
            with _connect(self.db_path) as con:
                cursor = con.execute(
                    """
                    UPDATE transactions
                       SET matched_obligation_id=?, match_method=?, review_required=?,
                           matched_at=?, processed=?
                     WHERE id=? AND matched_obligation_id IS NULL
                    """,
                    (
                        obligation_id,
                        match_method.value,
                        int(review_required),
                        matched_at.isoformat(),
                        int(not review_required),
                        transaction_id,
                    ),
                )
                updated = cursor.rowcount
        except sqlite3.IntegrityError as e:
            raise DuplicateMatchError(
                f"Obligation {obligation_id} already tag-matched: {e}"
            ) from e
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update transaction {transaction_id}: {e}") from e

        transaction = self.get(transaction_id)
        if transaction is None:
            raise PersistenceError(f"Unknown transaction {transaction_id}")
        if updated == 0:
            raise PersistenceError(
                f"Transaction {transaction_id} is already matched to "
                f"{transaction.matched_obligation_id}"
            )
        return transaction


class SqliteObligationStore(ObligationStore):
    """Obligation ledger in a SQLite database file."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = init_db(db_path)

    def add(self, obligation: Obligation) -> None:
        try:
            with _connect(self.db_path) as con:
                con.execute(
                    """
                    INSERT INTO obligations(
                      id, amount, owing_party, status, correlation_tag, session_id,
                      paid_at, notes, candidate_transaction_ids, seq
                    ) VALUES (?,?,?,?,?,?,?,?,?,
                      (SELECT COALESCE(MAX(seq), 0) + 1 FROM obligations))
                    ON CONFLICT(id) DO UPDATE SET
                      amount=excluded.amount,
                      owing_party=excluded.owing_party,
                      status=CASE WHEN obligations.status='paid'
                                  THEN obligations.status ELSE excluded.status END,
                      correlation_tag=excluded.correlation_tag,
                      session_id=excluded.session_id
                    """,
                    (
                        obligation.id,
                        str(obligation.amount),
                        obligation.owing_party,
                        obligation.status.value,
                        obligation.correlation_tag,
                        obligation.session_id,
                        _iso(obligation.paid_at),
                        obligation.notes,
                        json.dumps(obligation.candidate_transaction_ids),
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to store obligation {obligation.id}: {e}") from e

    def get(self, obligation_id: str) -> Optional[Obligation]:
        with _connect(self.db_path) as con:
            row = con.execute(
                "SELECT * FROM obligations WHERE id=?", (obligation_id,)
            ).fetchone()
        return _row_to_obligation(row) if row else None

    def list_all(self) -> list[Obligation]:
        with _connect(self.db_path) as con:
            rows = con.execute("SELECT * FROM obligations ORDER BY seq").fetchall()
        return [_row_to_obligation(row) for row in rows]

    def find_by_tag(self, correlation_tag: str) -> list[Obligation]:
        with _connect(self.db_path) as con:
            rows = con.execute(
                "SELECT * FROM obligations WHERE correlation_tag=? ORDER BY seq",
                (correlation_tag,),
            ).fetchall()
        return [_row_to_obligation(row) for row in rows]

    def list_pending(self) -> list[Obligation]:
        with _connect(self.db_path) as con:
            rows = con.execute(
                "SELECT * FROM obligations WHERE status=? ORDER BY seq",
                (ObligationStatus.PENDING.value,),
            ).fetchall()
        return [_row_to_obligation(row) for row in rows]

    def mark_paid(
        self,
        obligation_id: str,
        paid_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> bool:
        paid_at = paid_at or datetime.now()
        try:
            with _connect(self.db_path) as con:
                cursor = con.execute(
                    """
                    UPDATE obligations
                       SET status=?, paid_at=?, notes=COALESCE(?, notes)
                     WHERE id=? AND status=?
                    """,
                    (
                        ObligationStatus.PAID.value,
                        paid_at.isoformat(),
                        notes,
                        obligation_id,
                        ObligationStatus.PENDING.value,
                    ),
                )
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            logger.error(f"Failed to settle obligation {obligation_id}: {e}")
            raise SettlementError(f"Failed to settle obligation {obligation_id}: {e}") from e

    def add_candidate(self, obligation_id: str, transaction_id: str) -> None:
        try:
            with _connect(self.db_path) as con:
                # BEGIN IMMEDIATE serialises concurrent read-modify-write of the JSON list
                con.execute("BEGIN IMMEDIATE")
                row = con.execute(
                    "SELECT candidate_transaction_ids FROM obligations WHERE id=?",
                    (obligation_id,),
                ).fetchone()
                if row is None:
                    raise PersistenceError(f"Unknown obligation {obligation_id}")

                candidates = json.loads(row["candidate_transaction_ids"] or "[]")
                if transaction_id not in candidates:
                    candidates.append(transaction_id)
                    con.execute(
                        "UPDATE obligations SET candidate_transaction_ids=? WHERE id=?",
                        (json.dumps(candidates), obligation_id),
                    )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to annotate obligation {obligation_id}: {e}") from e
