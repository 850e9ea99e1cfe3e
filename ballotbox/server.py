# server.py
#
# Tally server: the aggregation party. Accepts encrypted ballots, folds them
# and hands the aggregate to the authority. It only ever holds public keys;
# session records live in an injected SessionStore.
#
# Every operation runs load → transition → save under that session's lock,
# so concurrent submissions are never lost and nothing slips in once a tally
# has started reading the ballots. Different sessions never share a lock.
# Locks exist only for sessions present in the store.

import threading
from typing import Optional

from .codec import decode_int, preview
from .config import TallyConfig, DEFAULT_CONFIG
from .errors import (
    TallyError, InvalidCiphertextError, InvalidPublicKeyError, KeyBoundaryError,
    BallotLimitError, DecryptionError, SessionNotFoundError,
)
from .log import make_logger
from .paillier import PublicKey, PrivateKey, KeyPair
from .session import BallotSession
from .store import SessionStore, check_record, open_store


class TallyServer:
    """Inbound interface of the aggregation party."""

    def __init__(self, store: Optional[SessionStore] = None, config: Optional[TallyConfig] = None,
                 logger=None):
        self.logger = logger or make_logger("Server")
        self.config = (config or DEFAULT_CONFIG).require_valid(self.logger)
        self.store = store if store is not None else open_store(self.config)
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._decrypt_failures = {}

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _lock_for(self, session_id, op=None):
        """
        The session's lock. Created lazily for sessions already in the store;
        unknown ids raise SessionNotFoundError and leave no lock behind.
        """
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                if session_id not in self.store:
                    err = SessionNotFoundError(f"Session {session_id} not found")
                    if op:
                        self._rejected(op, session_id, err)
                    raise err
                lock = self._locks[session_id] = threading.Lock()
            return lock

    def _load(self, session_id) -> BallotSession:
        record = self.store.load(session_id)
        try:
            return BallotSession.from_record(record, self.config)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidCiphertextError(f"Stored record for {session_id} is corrupted: {e}") from e

    def _rejected(self, op, session_id, err):
        kind = "FATAL" if err.fatal else "rejected"
        self.logger(f"⚠ {op} {kind} for {session_id}: {type(err).__name__}: {err}")

    def _public_key(self, public_key) -> PublicKey:
        if isinstance(public_key, (PrivateKey, KeyPair)):
            raise KeyBoundaryError("The tally server accepts only public keys")
        if isinstance(public_key, dict):
            check_record(public_key, "public_key")
            try:
                public_key = PublicKey.from_dict(public_key)
            except KeyError as e:
                raise InvalidPublicKeyError(f"Public key is missing field {e}") from None
            except (TypeError, ValueError) as e:
                raise InvalidPublicKeyError(f"Malformed public key: {e}") from e
        if not isinstance(public_key, PublicKey):
            raise TypeError("open_session needs a PublicKey")
        if public_key.n <= self.config.session.MAX_BALLOTS:
            raise BallotLimitError("Modulus n does not exceed the configured ballot limit")
        return public_key

    # ── Operations ──────────────────────────────────────────────────────────

    def open_session(self, public_key) -> str:
        """
        Register a new session under the given public key.
        - public_key: PublicKey, or its dict form with decimal / hex strings
        Private key material of any shape is refused.
        """
        try:
            public_key = self._public_key(public_key)
        except TallyError as e:
            self._rejected("open_session", "-", e)
            raise

        session = BallotSession.open(public_key, self.config)
        self.store.create(session.session_id, session.to_record())
        with self._locks_guard:
            self._locks[session.session_id] = threading.Lock()
        self.logger(f"Session {session.session_id} opened ({public_key.bits}-bit public key)")
        return session.session_id

    def delete_session(self, session_id):
        """Remove the session record and forget its lock and failure count."""
        with self._lock_for(session_id, "delete"):
            self.store.delete(session_id)
            with self._locks_guard:
                self._locks.pop(session_id, None)
                self._decrypt_failures.pop(session_id, None)
        self.logger(f"Session {session_id} deleted")

    def submit_ballot(self, session_id, ciphertext) -> int:
        """Append one encrypted ballot; returns the session's ballot count."""
        try:
            value = decode_int(ciphertext)
        except ValueError as e:
            err = InvalidCiphertextError(str(e))
            self._rejected("submit", session_id, err)
            raise err from e

        with self._lock_for(session_id, "submit"):
            try:
                session = self._load(session_id)
                count = session.submit(value)
            except TallyError as e:
                self._rejected("submit", session_id, e)
                raise
            self.store.save(session_id, session.to_record())
        self.logger(f"Ballot #{count} for {session_id}: {preview(value, 24)} (server cannot read it)")
        return count

    def compute_tally(self, session_id) -> int:
        """Fold every ballot of the session into one aggregate ciphertext."""
        with self._lock_for(session_id, "tally"):
            try:
                session = self._load(session_id)
                aggregate = session.tally()
            except TallyError as e:
                self._rejected("tally", session_id, e)
                raise
            self.store.save(session_id, session.to_record())
        self.logger(f"Homomorphic tally of {session.ballot_count} ballots computed for {session_id}")
        return aggregate

    def finalize(self, session_id, private_key) -> int:
        """
        Decrypt the aggregate and close the session. Called by the authority
        inside its own trust boundary; the key is used once and not stored.
        """
        with self._lock_for(session_id, "finalize"):
            try:
                session = self._load(session_id)
                total = session.finalize(private_key)
            except DecryptionError as e:
                failures = self._decrypt_failures.get(session_id, 0) + 1
                self._decrypt_failures[session_id] = failures
                self._rejected("finalize", session_id, e)
                if failures >= self.config.session.DECRYPTION_FAILURE_ESCALATION:
                    self.logger(f"ERROR: {failures} failed decryptions on {session_id}; possible tampering")
                raise
            except TallyError as e:
                self._rejected("finalize", session_id, e)
                raise
            self.store.save(session_id, session.to_record())
        self._decrypt_failures.pop(session_id, None)
        self.logger(f"Session {session_id} closed: {total} of {session.ballot_count} ballots YES")
        return total

    def get_session(self, session_id):
        """Snapshot of the session: status, counts, ballot previews, public key."""
        with self._lock_for(session_id):
            return self._load(session_id).snapshot()

    def results(self, session_id):
        with self._lock_for(session_id):
            return self._load(session_id).results()

    def audit(self, session_id) -> bool:
        """
        Re-check receipt digests and compare the stored aggregate with a
        store-side re-fold of the stored ballots.
        """
        with self._lock_for(session_id):
            session = self._load(session_id)
            try:
                session.verify_ballots()
            except InvalidCiphertextError as e:
                self._rejected("audit", session_id, e)
                return False
            if session.aggregate is None:
                return True
            refold = self.store.fold_ballots(session_id, session.public_key.n_square)
        ok = refold == session.aggregate
        self.logger(f"Audit of {session_id}: {'aggregate reproduced' if ok else 'AGGREGATE MISMATCH'}")
        return ok
