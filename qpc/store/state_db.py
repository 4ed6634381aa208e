from __future__ import annotations

"""
QPC SQLite state adapter
========================

Purpose
-------
Durable storage for everything the lifecycle engine must resume from after a
restart: the job store, the decryption request correlation table, refund
balances, payouts, price factors, the decrypt capability map, pending oracle
requests, quantum states, compiled circuits, the access registry and the
audit log. Counters (next job id, FHE key) live in the `meta` table, so the
service carries no ambient global state.

Design notes
------------
- Single-writer, many-reader friendly via WAL.
- Schema versioned and auto-migrated on open.
- `tx()` is re-entrant: nested calls join the outermost transaction, so a
  public operation composed of several store-level steps commits or rolls
  back as one unit.
- Callbacks registered with `on_commit()` run only after the outermost
  COMMIT and are dropped on ROLLBACK (used for event publication).

Example
-------
    db = QPCStateDB(":memory:")
    with db.tx():
        job_id = db.allocate("next_job_id")
        db.insert_job(Job(job_id=job_id, depositor="alice", ...))
    db.get_job(job_id)
"""

import contextlib
import json
import sqlite3
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..errors import StoreError
from ..qtypes.events import AuditEvent
from ..qtypes.job import Correlation, Job

# ---- Utilities ---------------------------------------------------------------


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True)


def _loads(text: Optional[str]) -> Any:
    if not text:
        return None
    return json.loads(text)


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS jobs (
        job_id                  INTEGER PRIMARY KEY,
        depositor               TEXT NOT NULL,
        status                  TEXT NOT NULL,
        algorithm               INTEGER NOT NULL,
        deposit                 INTEGER NOT NULL,
        submit_time             REAL NOT NULL,
        complete_time           REAL,
        outstanding_request_id  INTEGER NOT NULL DEFAULT 0,
        refund_claimed          INTEGER NOT NULL DEFAULT 0,
        encrypted_input         TEXT NOT NULL,
        encrypted_result        TEXT,
        plaintext_result        INTEGER,
        resource_units          INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_jobs_depositor ON jobs(depositor, job_id)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status)",
    """
    CREATE TABLE IF NOT EXISTS correlations (
        request_id       INTEGER PRIMARY KEY,
        job_id           INTEGER NOT NULL,
        created_at       REAL NOT NULL,
        deadline         REAL NOT NULL,
        consumed         INTEGER NOT NULL DEFAULT 0,
        consumed_reason  TEXT,
        FOREIGN KEY(job_id) REFERENCES jobs(job_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_correlations_job ON correlations(job_id)",
    """
    CREATE TABLE IF NOT EXISTS refunds (
        depositor  TEXT PRIMARY KEY,
        balance    INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payouts (
        payout_id   INTEGER PRIMARY KEY AUTOINCREMENT,
        depositor   TEXT NOT NULL,
        amount      INTEGER NOT NULL,
        created_at  REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS price_factors (
        price_id           INTEGER PRIMARY KEY,
        factor_handle      TEXT NOT NULL,
        obfuscated_handle  TEXT NOT NULL,
        owner              TEXT NOT NULL,
        updated_at         REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS acl (
        resource    TEXT NOT NULL,
        principal   TEXT NOT NULL,
        granted_at  REAL NOT NULL,
        PRIMARY KEY(resource, principal)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS oracle_requests (
        request_id    INTEGER PRIMARY KEY AUTOINCREMENT,
        handles_json  TEXT NOT NULL,
        callback_id   TEXT NOT NULL,
        deadline      REAL NOT NULL,
        requester     TEXT NOT NULL,
        status        TEXT NOT NULL,        -- 'pending' | 'fulfilled' | 'failed'
        created_at    REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_oracle_requests_status ON oracle_requests(status)",
    """
    CREATE TABLE IF NOT EXISTS quantum_states (
        owner            TEXT PRIMARY KEY,
        qubit_count      INTEGER NOT NULL,
        amplitudes_json  TEXT NOT NULL,
        entangled_with   TEXT,
        updated_at       REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS circuits (
        owner        TEXT NOT NULL,
        circuit_id   INTEGER NOT NULL,
        gates_json   TEXT NOT NULL,
        compiled_at  REAL NOT NULL,
        PRIMARY KEY(owner, circuit_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS principals (
        principal  TEXT NOT NULL,
        role       TEXT NOT NULL,           -- 'operator' | 'worker'
        added_at   REAL NOT NULL,
        PRIMARY KEY(principal, role)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        seq        INTEGER PRIMARY KEY AUTOINCREMENT,
        ts         REAL NOT NULL,
        etype      TEXT NOT NULL,
        job_id     INTEGER,
        principal  TEXT,
        data_json  TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_job ON events(job_id, seq)",
)


# ---- Main adapter ------------------------------------------------------------


class QPCStateDB:
    """
    Tiny SQLite adapter for QPC.

    Thread-safe for simple concurrent access via an internal RLock held for
    the duration of a transaction.
    """

    SCHEMA_VERSION = 1

    def __init__(self, path: str) -> None:
        """
        Open or create the SQLite database.

        `path` may be a filesystem path, ":memory:", or a URI ("file:...").
        """
        self.path = path
        uri = path.startswith("file:")
        self._db = sqlite3.connect(
            path,
            uri=uri,
            check_same_thread=False,
            isolation_level=None,  # autocommit; we manage transactions
        )
        self._db.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._after_commit: List[Callable[[], None]] = []
        self._apply_pragmas()
        with self.tx():
            self._migrate()

    # -- lifecycle -------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._db.close()

    @contextlib.contextmanager
    def tx(self) -> Iterator[None]:
        """
        Transaction context manager (re-entrant).

        Usage:
            with db.tx():
                db.do_write(...)
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                self._depth = 0
                self._after_commit.clear()
                self._db.execute("ROLLBACK")
                raise
            self._depth = 0
            self._db.execute("COMMIT")
            pending, self._after_commit = self._after_commit, []
            for fn in pending:
                fn()

    @property
    def in_tx(self) -> bool:
        return self._depth > 0

    def on_commit(self, fn: Callable[[], None]) -> None:
        """Run `fn` after the outermost transaction commits (immediately if none is open)."""
        if self._depth:
            self._after_commit.append(fn)
        else:
            fn()

    def _apply_pragmas(self) -> None:
        cur = self._db.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA foreign_keys=ON")
        cur.execute("PRAGMA temp_store=MEMORY")
        cur.close()

    # -- schema & migrations ---------------------------------------------------

    def _migrate(self) -> None:
        cur = self._db.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        cur.execute("SELECT value FROM meta WHERE key='schema_version'")
        row = cur.fetchone()
        if not row:
            cur.execute(
                "INSERT INTO meta(key, value) VALUES('schema_version', ?)",
                (str(self.SCHEMA_VERSION),),
            )
        elif int(row["value"]) > self.SCHEMA_VERSION:
            raise StoreError(
                "database schema is newer than this build",
                details={"found": int(row["value"]), "supported": self.SCHEMA_VERSION},
            )
        # executescript() would COMMIT the open transaction; run statements one by one.
        for stmt in _SCHEMA:
            cur.execute(stmt)
        cur.close()

    # ---- meta & counters -----------------------------------------------------

    def get_meta(self, key: str) -> Optional[str]:
        row = self._db.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        self._db.execute(
            "INSERT INTO meta(key, value) VALUES(?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, str(value)),
        )

    def allocate(self, counter: str, *, start: int = 1) -> int:
        """Return the next value of a monotonic counter (first value is `start`)."""
        with self.tx():
            raw = self.get_meta(counter)
            value = int(raw) if raw is not None else start
            self.set_meta(counter, str(value + 1))
            return value

    # ---- jobs ----------------------------------------------------------------

    def insert_job(self, job: Job) -> None:
        try:
            self._db.execute(
                """
                INSERT INTO jobs(job_id,depositor,status,algorithm,deposit,submit_time,complete_time,
                                 outstanding_request_id,refund_claimed,encrypted_input,encrypted_result,
                                 plaintext_result,resource_units)
                VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?)
                """,
                self._job_params(job),
            )
        except sqlite3.IntegrityError as e:
            raise StoreError(f"job {job.job_id} already exists") from e

    def update_job(self, job: Job) -> None:
        cur = self._db.execute(
            """
            UPDATE jobs SET status=?, complete_time=?, outstanding_request_id=?, refund_claimed=?,
                            encrypted_result=?, plaintext_result=?, resource_units=?
            WHERE job_id=?
            """,
            (
                job.status.value,
                job.complete_time,
                int(job.outstanding_request_id),
                1 if job.refund_claimed else 0,
                job.encrypted_result,
                job.plaintext_result,
                int(job.resource_units),
                int(job.job_id),
            ),
        )
        if cur.rowcount == 0:
            raise StoreError(f"job {job.job_id} not found")

    def get_job(self, job_id: int) -> Optional[Job]:
        row = self._db.execute("SELECT * FROM jobs WHERE job_id=?", (int(job_id),)).fetchone()
        return self._row_job(row) if row else None

    def list_jobs(
        self,
        *,
        depositor: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> List[Job]:
        sql = "SELECT * FROM jobs WHERE 1=1"
        args: List[Any] = []
        if depositor is not None:
            sql += " AND depositor=?"
            args.append(depositor)
        if status:
            sql += " AND status=?"
            args.append(status)
        sql += " ORDER BY job_id ASC LIMIT ? OFFSET ?"
        args.extend([int(limit), int(offset)])
        return [self._row_job(r) for r in self._db.execute(sql, args).fetchall()]

    def job_ids_for(self, depositor: str) -> List[int]:
        rows = self._db.execute(
            "SELECT job_id FROM jobs WHERE depositor=? ORDER BY job_id ASC", (depositor,)
        ).fetchall()
        return [int(r["job_id"]) for r in rows]

    # ---- correlation table ---------------------------------------------------

    def insert_correlation(self, c: Correlation) -> None:
        try:
            self._db.execute(
                "INSERT INTO correlations(request_id,job_id,created_at,deadline,consumed,consumed_reason) "
                "VALUES(?,?,?,?,?,?)",
                (int(c.request_id), int(c.job_id), c.created_at, c.deadline,
                 1 if c.consumed else 0, c.consumed_reason),
            )
        except sqlite3.IntegrityError as e:
            raise StoreError(f"request {c.request_id} already correlated") from e

    def get_correlation(self, request_id: int) -> Optional[Correlation]:
        row = self._db.execute(
            "SELECT * FROM correlations WHERE request_id=?", (int(request_id),)
        ).fetchone()
        if not row:
            return None
        return Correlation(
            request_id=int(row["request_id"]),
            job_id=int(row["job_id"]),
            created_at=float(row["created_at"]),
            deadline=float(row["deadline"]),
            consumed=bool(row["consumed"]),
            consumed_reason=row["consumed_reason"],
        )

    def consume_correlation(self, request_id: int, reason: str) -> bool:
        """Mark a correlation consumed; returns False if already consumed or unknown."""
        cur = self._db.execute(
            "UPDATE correlations SET consumed=1, consumed_reason=? WHERE request_id=? AND consumed=0",
            (reason, int(request_id)),
        )
        return cur.rowcount > 0

    def correlations_for(self, job_id: int) -> List[Correlation]:
        rows = self._db.execute(
            "SELECT request_id FROM correlations WHERE job_id=? ORDER BY request_id", (int(job_id),)
        ).fetchall()
        out = [self.get_correlation(int(r["request_id"])) for r in rows]
        return [c for c in out if c is not None]

    # ---- refunds & payouts ---------------------------------------------------

    def get_balance(self, depositor: str) -> int:
        row = self._db.execute("SELECT balance FROM refunds WHERE depositor=?", (depositor,)).fetchone()
        return int(row["balance"]) if row else 0

    def set_balance(self, depositor: str, balance: int) -> None:
        if balance < 0:
            raise StoreError("refund balance cannot be negative", details={"depositor": depositor})
        self._db.execute(
            "INSERT INTO refunds(depositor, balance) VALUES(?, ?) "
            "ON CONFLICT(depositor) DO UPDATE SET balance=excluded.balance",
            (depositor, int(balance)),
        )

    def credit_balance(self, depositor: str, delta: int) -> int:
        new = self.get_balance(depositor) + int(delta)
        self.set_balance(depositor, new)
        return new

    def insert_payout(self, depositor: str, amount: int, created_at: float) -> int:
        cur = self._db.execute(
            "INSERT INTO payouts(depositor, amount, created_at) VALUES(?,?,?)",
            (depositor, int(amount), float(created_at)),
        )
        return int(cur.lastrowid)

    def list_payouts(self, depositor: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM payouts"
        args: List[Any] = []
        if depositor is not None:
            sql += " WHERE depositor=?"
            args.append(depositor)
        sql += " ORDER BY payout_id ASC"
        return [
            {
                "payout_id": int(r["payout_id"]),
                "depositor": r["depositor"],
                "amount": int(r["amount"]),
                "created_at": float(r["created_at"]),
            }
            for r in self._db.execute(sql, args).fetchall()
        ]

    # ---- price factors -------------------------------------------------------

    def put_price(self, price_id: int, factor_handle: str, obfuscated_handle: str,
                  owner: str, updated_at: float) -> None:
        self._db.execute(
            """
            INSERT INTO price_factors(price_id, factor_handle, obfuscated_handle, owner, updated_at)
            VALUES(?,?,?,?,?)
            ON CONFLICT(price_id) DO UPDATE SET
                factor_handle=excluded.factor_handle,
                obfuscated_handle=excluded.obfuscated_handle,
                owner=excluded.owner,
                updated_at=excluded.updated_at
            """,
            (int(price_id), factor_handle, obfuscated_handle, owner, float(updated_at)),
        )

    def get_price(self, price_id: int) -> Optional[Dict[str, Any]]:
        row = self._db.execute("SELECT * FROM price_factors WHERE price_id=?", (int(price_id),)).fetchone()
        if not row:
            return None
        return {
            "price_id": int(row["price_id"]),
            "factor_handle": row["factor_handle"],
            "obfuscated_handle": row["obfuscated_handle"],
            "owner": row["owner"],
            "updated_at": float(row["updated_at"]),
        }

    # ---- capability map ------------------------------------------------------

    def acl_grant(self, resource: str, principal: str, granted_at: float) -> bool:
        cur = self._db.execute(
            "INSERT OR IGNORE INTO acl(resource, principal, granted_at) VALUES(?,?,?)",
            (resource, principal, float(granted_at)),
        )
        return cur.rowcount > 0

    def acl_has(self, resource: str, principal: str) -> bool:
        row = self._db.execute(
            "SELECT 1 FROM acl WHERE resource=? AND principal=?", (resource, principal)
        ).fetchone()
        return row is not None

    def acl_holders(self, resource: str) -> List[str]:
        rows = self._db.execute(
            "SELECT principal FROM acl WHERE resource=? ORDER BY granted_at, principal", (resource,)
        ).fetchall()
        return [r["principal"] for r in rows]

    # ---- oracle requests -----------------------------------------------------

    def insert_oracle_request(self, handles: List[str], callback_id: str, deadline: float,
                              requester: str, created_at: float) -> int:
        cur = self._db.execute(
            "INSERT INTO oracle_requests(handles_json, callback_id, deadline, requester, status, created_at) "
            "VALUES(?,?,?,?, 'pending', ?)",
            (_dumps(list(handles)), callback_id, float(deadline), requester, float(created_at)),
        )
        return int(cur.lastrowid)

    def get_oracle_request(self, request_id: int) -> Optional[Dict[str, Any]]:
        row = self._db.execute(
            "SELECT * FROM oracle_requests WHERE request_id=?", (int(request_id),)
        ).fetchone()
        return self._row_oracle(row) if row else None

    def list_oracle_requests(self, status: Optional[str] = "pending") -> List[Dict[str, Any]]:
        sql = "SELECT * FROM oracle_requests"
        args: List[Any] = []
        if status:
            sql += " WHERE status=?"
            args.append(status)
        sql += " ORDER BY request_id ASC"
        return [self._row_oracle(r) for r in self._db.execute(sql, args).fetchall()]

    def set_oracle_request_status(self, request_id: int, status: str) -> None:
        cur = self._db.execute(
            "UPDATE oracle_requests SET status=? WHERE request_id=?", (status, int(request_id))
        )
        if cur.rowcount == 0:
            raise StoreError(f"oracle request {request_id} not found")

    # ---- quantum states & circuits -------------------------------------------

    def upsert_state(self, owner: str, qubit_count: int, amplitudes: List[str], updated_at: float) -> None:
        self._db.execute(
            """
            INSERT INTO quantum_states(owner, qubit_count, amplitudes_json, entangled_with, updated_at)
            VALUES(?,?,?,NULL,?)
            ON CONFLICT(owner) DO UPDATE SET
                qubit_count=excluded.qubit_count,
                amplitudes_json=excluded.amplitudes_json,
                entangled_with=NULL,
                updated_at=excluded.updated_at
            """,
            (owner, int(qubit_count), _dumps(list(amplitudes)), float(updated_at)),
        )

    def get_state(self, owner: str) -> Optional[Dict[str, Any]]:
        row = self._db.execute("SELECT * FROM quantum_states WHERE owner=?", (owner,)).fetchone()
        if not row:
            return None
        return {
            "owner": row["owner"],
            "qubit_count": int(row["qubit_count"]),
            "amplitudes": _loads(row["amplitudes_json"]) or [],
            "entangled_with": row["entangled_with"],
            "updated_at": float(row["updated_at"]),
        }

    def set_entangled(self, owner: str, partner: str) -> None:
        self._db.execute("UPDATE quantum_states SET entangled_with=? WHERE owner=?", (partner, owner))

    def upsert_circuit(self, owner: str, circuit_id: int, gates: List[Dict[str, int]], compiled_at: float) -> None:
        self._db.execute(
            """
            INSERT INTO circuits(owner, circuit_id, gates_json, compiled_at) VALUES(?,?,?,?)
            ON CONFLICT(owner, circuit_id) DO UPDATE SET
                gates_json=excluded.gates_json, compiled_at=excluded.compiled_at
            """,
            (owner, int(circuit_id), _dumps(gates), float(compiled_at)),
        )

    def get_circuit(self, owner: str, circuit_id: int) -> Optional[Dict[str, Any]]:
        row = self._db.execute(
            "SELECT * FROM circuits WHERE owner=? AND circuit_id=?", (owner, int(circuit_id))
        ).fetchone()
        if not row:
            return None
        return {
            "owner": row["owner"],
            "circuit_id": int(row["circuit_id"]),
            "gates": _loads(row["gates_json"]) or [],
            "compiled_at": float(row["compiled_at"]),
        }

    # ---- access registry -----------------------------------------------------

    def add_principal(self, principal: str, role: str, added_at: float) -> bool:
        cur = self._db.execute(
            "INSERT OR IGNORE INTO principals(principal, role, added_at) VALUES(?,?,?)",
            (principal, role, float(added_at)),
        )
        return cur.rowcount > 0

    def remove_principal(self, principal: str, role: str) -> bool:
        cur = self._db.execute("DELETE FROM principals WHERE principal=? AND role=?", (principal, role))
        return cur.rowcount > 0

    def has_principal(self, principal: str, role: str) -> bool:
        row = self._db.execute(
            "SELECT 1 FROM principals WHERE principal=? AND role=?", (principal, role)
        ).fetchone()
        return row is not None

    def list_principals(self, role: str) -> List[str]:
        rows = self._db.execute(
            "SELECT principal FROM principals WHERE role=? ORDER BY principal", (role,)
        ).fetchall()
        return [r["principal"] for r in rows]

    # ---- audit log -----------------------------------------------------------

    def append_event(self, ev: AuditEvent) -> int:
        cur = self._db.execute(
            "INSERT INTO events(ts, etype, job_id, principal, data_json) VALUES(?,?,?,?,?)",
            (ev.ts, ev.etype.value, ev.job_id, ev.principal, _dumps(ev.data)),
        )
        ev.seq = int(cur.lastrowid)
        return ev.seq

    def list_events(
        self,
        *,
        job_id: Optional[int] = None,
        etype: Optional[str] = None,
        after_seq: int = 0,
        limit: int = 1000,
    ) -> List[AuditEvent]:
        sql = "SELECT * FROM events WHERE seq > ?"
        args: List[Any] = [int(after_seq)]
        if job_id is not None:
            sql += " AND job_id=?"
            args.append(int(job_id))
        if etype:
            sql += " AND etype=?"
            args.append(etype)
        sql += " ORDER BY seq ASC LIMIT ?"
        args.append(int(limit))
        return [
            AuditEvent.from_dict(
                {
                    "seq": r["seq"],
                    "ts": r["ts"],
                    "etype": r["etype"],
                    "job_id": r["job_id"],
                    "principal": r["principal"],
                    "data": _loads(r["data_json"]) or {},
                }
            )
            for r in self._db.execute(sql, args).fetchall()
        ]

    # ---- rows → records ------------------------------------------------------

    @staticmethod
    def _job_params(job: Job) -> tuple:
        return (
            int(job.job_id),
            job.depositor,
            job.status.value,
            int(job.algorithm),
            int(job.deposit),
            float(job.submit_time),
            job.complete_time,
            int(job.outstanding_request_id),
            1 if job.refund_claimed else 0,
            job.encrypted_input,
            job.encrypted_result,
            job.plaintext_result,
            int(job.resource_units),
        )

    @staticmethod
    def _row_job(row: sqlite3.Row) -> Job:
        return Job.from_dict(
            {
                "job_id": row["job_id"],
                "depositor": row["depositor"],
                "encrypted_input": row["encrypted_input"],
                "algorithm": row["algorithm"],
                "deposit": row["deposit"],
                "submit_time": row["submit_time"],
                "status": row["status"],
                "encrypted_result": row["encrypted_result"],
                "complete_time": row["complete_time"],
                "outstanding_request_id": row["outstanding_request_id"],
                "refund_claimed": bool(row["refund_claimed"]),
                "plaintext_result": row["plaintext_result"],
                "resource_units": row["resource_units"],
            }
        )

    @staticmethod
    def _row_oracle(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "request_id": int(row["request_id"]),
            "handles": _loads(row["handles_json"]) or [],
            "callback_id": row["callback_id"],
            "deadline": float(row["deadline"]),
            "requester": row["requester"],
            "status": row["status"],
            "created_at": float(row["created_at"]),
        }


def open_state_db(url: str) -> QPCStateDB:
    """
    Open a QPCStateDB from a path or URL.

    Accepts ":memory:" / "memory:", "sqlite:///relative/or/absolute.db",
    "file:..." URIs, or a plain filesystem path.
    """
    if url in (":memory:", "memory:", "sqlite:///:memory:"):
        return QPCStateDB(":memory:")
    if url.startswith("sqlite:///"):
        return QPCStateDB(url[len("sqlite:///"):])
    return QPCStateDB(url)


__all__ = ["QPCStateDB", "open_state_db"]
