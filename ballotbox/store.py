# store.py
#
# Session store: mapping from session id to the session record (plain dicts
# of strings). The tally server only ever talks to this interface; the
# in-memory backend serves tests, the SQLite backend durable deployments.
#
# Records never carry private key material; every write is checked.

import copy
import sqlite3
import threading

from .codec import decode_int, encode_int
from .errors import KeyBoundaryError, SessionNotFoundError

PRIVATE_FIELDS = frozenset({"lam", "lambda", "mu", "private_key", "privateKey"})


def check_record(record, path="record"):
    """Reject any record that carries private-key fields, at any depth."""
    if isinstance(record, dict):
        for key, value in record.items():
            if key in PRIVATE_FIELDS:
                raise KeyBoundaryError(f"Refusing to store private key field {path}.{key}")
            check_record(value, f"{path}.{key}")
    elif isinstance(record, (list, tuple)):
        for i, value in enumerate(record):
            check_record(value, f"{path}[{i}]")


class SessionStore:
    """Abstract session store"""

    def create(self, session_id, record):
        """Store a new record; ValueError if the id is taken."""
        raise NotImplementedError

    def load(self, session_id):
        """Return the record; SessionNotFoundError if unknown."""
        raise NotImplementedError

    def save(self, session_id, record):
        """Overwrite an existing record."""
        raise NotImplementedError

    def delete(self, session_id):
        raise NotImplementedError

    def ids(self):
        raise NotImplementedError

    def __contains__(self, session_id):
        return session_id in self.ids()

    def fold_ballots(self, session_id, n_square):
        """Product of the stored ciphertexts mod n^2, or None without ballots."""
        product = None
        for ballot in self.load(session_id)["ballots"]:
            c = decode_int(ballot["ciphertext"])
            product = c if product is None else (product * c) % n_square
        return product


class MemorySessionStore(SessionStore):
    """Dict-backed store; hands out copies so callers cannot mutate stored state."""

    def __init__(self):
        self._records = {}
        self._lock = threading.Lock()

    def create(self, session_id, record):
        check_record(record)
        with self._lock:
            if session_id in self._records:
                raise ValueError(f"Session {session_id} already exists")
            self._records[session_id] = copy.deepcopy(record)

    def load(self, session_id):
        with self._lock:
            try:
                return copy.deepcopy(self._records[session_id])
            except KeyError:
                raise SessionNotFoundError(f"Session {session_id} not found") from None

    def save(self, session_id, record):
        check_record(record)
        with self._lock:
            if session_id not in self._records:
                raise SessionNotFoundError(f"Session {session_id} not found")
            self._records[session_id] = copy.deepcopy(record)

    def delete(self, session_id):
        with self._lock:
            if self._records.pop(session_id, None) is None:
                raise SessionNotFoundError(f"Session {session_id} not found")

    def ids(self):
        with self._lock:
            return list(self._records)

    def __contains__(self, session_id):
        with self._lock:
            return session_id in self._records


class PaillierProd:
    """SQLite aggregate multiplying ciphertexts mod n^2 inside the database."""

    def __init__(self):
        self.product = None

    def step(self, value, n_square):
        if value is not None:
            c = decode_int(value)
            self.product = c if self.product is None else (self.product * c) % decode_int(n_square)

    def finalize(self):
        return None if self.product is None else encode_int(self.product)


class SqliteSessionStore(SessionStore):
    """
    SQLite-backed store. Numbers are kept as decimal (or 0x-hex) TEXT; ballots are
    append-only rows keyed by (session_id, sequence).
    """

    def __init__(self, path=":memory:"):
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._lock = threading.Lock()
        # paillier_prod(ciphertext, n_square) for folding in SQL
        self._conn.create_aggregate("paillier_prod", 2, PaillierProd)
        with self._lock, self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS sessions ("
                " session_id TEXT PRIMARY KEY, n TEXT NOT NULL, g TEXT NOT NULL,"
                " status TEXT NOT NULL, created_at TEXT, closed_at TEXT,"
                " aggregate TEXT, result TEXT)"
            )
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS ballots ("
                " session_id TEXT NOT NULL, sequence INTEGER NOT NULL,"
                " ciphertext TEXT NOT NULL, received_at TEXT, digest TEXT,"
                " PRIMARY KEY (session_id, sequence))"
            )

    def close(self):
        with self._lock:
            self._conn.close()

    def _exists(self, session_id):
        row = self._conn.execute(
            "SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)).fetchone()
        return row is not None

    def _write(self, session_id, record):
        pk = record["public_key"]
        self._conn.execute(
            "INSERT INTO sessions (session_id, n, g, status, created_at, closed_at, aggregate, result)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(session_id) DO UPDATE SET status = excluded.status,"
            " closed_at = excluded.closed_at, aggregate = excluded.aggregate,"
            " result = excluded.result",
            (session_id, pk["n"], pk["g"], record["status"], record.get("created_at"),
             record.get("closed_at"), record.get("aggregate"), record.get("result")),
        )
        # Ballots are append-only: rows already present are never rewritten
        self._conn.executemany(
            "INSERT OR IGNORE INTO ballots (session_id, sequence, ciphertext, received_at, digest)"
            " VALUES (?, ?, ?, ?, ?)",
            [(session_id, b["sequence"], b["ciphertext"], b.get("received_at"), b.get("digest"))
             for b in record.get("ballots", [])],
        )

    def create(self, session_id, record):
        check_record(record)
        with self._lock, self._conn:
            if self._exists(session_id):
                raise ValueError(f"Session {session_id} already exists")
            self._write(session_id, record)

    def save(self, session_id, record):
        check_record(record)
        with self._lock, self._conn:
            if not self._exists(session_id):
                raise SessionNotFoundError(f"Session {session_id} not found")
            self._write(session_id, record)

    def load(self, session_id):
        with self._lock:
            row = self._conn.execute(
                "SELECT n, g, status, created_at, closed_at, aggregate, result"
                " FROM sessions WHERE session_id = ?", (session_id,)).fetchone()
            if row is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            ballots = self._conn.execute(
                "SELECT sequence, ciphertext, received_at, digest FROM ballots"
                " WHERE session_id = ? ORDER BY sequence", (session_id,)).fetchall()
        n, g, status, created_at, closed_at, aggregate, result = row
        return {
            "session_id": session_id,
            "public_key": {"n": n, "g": g},
            "status": status,
            "created_at": created_at,
            "closed_at": closed_at,
            "ballots": [
                {"sequence": seq, "ciphertext": c, "received_at": ts, "digest": d}
                for seq, c, ts, d in ballots
            ],
            "aggregate": aggregate,
            "result": result,
        }

    def delete(self, session_id):
        with self._lock, self._conn:
            if not self._exists(session_id):
                raise SessionNotFoundError(f"Session {session_id} not found")
            self._conn.execute("DELETE FROM ballots WHERE session_id = ?", (session_id,))
            self._conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))

    def ids(self):
        with self._lock:
            return [r[0] for r in self._conn.execute("SELECT session_id FROM sessions")]

    def __contains__(self, session_id):
        with self._lock:
            return self._exists(session_id)

    def fold_ballots(self, session_id, n_square):
        with self._lock:
            if not self._exists(session_id):
                raise SessionNotFoundError(f"Session {session_id} not found")
            row = self._conn.execute(
                "SELECT paillier_prod(ciphertext, ?) FROM"
                " (SELECT ciphertext FROM ballots WHERE session_id = ? ORDER BY sequence)",
                (encode_int(n_square), session_id)).fetchone()
        return None if row[0] is None else decode_int(row[0])


def open_store(config):
    """Build the store named by config.storage.BACKEND."""
    storage = config.storage
    if storage.BACKEND == "memory":
        return MemorySessionStore()
    if storage.BACKEND == "sqlite":
        return SqliteSessionStore(storage.SQLITE_PATH)
    raise ValueError(f"Unknown storage backend {storage.BACKEND!r}")
