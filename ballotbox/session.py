# session.py
#
# Ballot session state machine: one public key, an append-only sequence of
# ballots, the folded aggregate and, once the authority has decrypted it,
# the plaintext sum.
#
#   OPEN → TALLYING → TALLIED → CLOSED
#
# No state is skipped and none is revisited. A failed operation leaves the
# session exactly as it was.

import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .codec import encode_int, decode_int, preview, digest
from .config import TallyConfig, DEFAULT_CONFIG
from .errors import (
    InvalidCiphertextError, BallotLimitError, KeyBoundaryError, IllegalTransitionError,
    SessionClosedError, EmptyTallyError, DecryptionError, InternalInvariantError,
)
from .paillier import PublicKey, PrivateKey, KeyPair, fold, decrypt


class SessionStatus(Enum):
    """Session lifecycle states"""
    OPEN = "open"
    TALLYING = "tallying"
    TALLIED = "tallied"
    CLOSED = "closed"


def _now():
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Ballot:
    """One submitted ciphertext with its receipt data"""
    sequence: int
    ciphertext: int
    received_at: str
    digest: str

    def to_record(self, fmt="dec"):
        return {
            "sequence": self.sequence,
            "ciphertext": encode_int(self.ciphertext, fmt),
            "received_at": self.received_at,
            "digest": self.digest,
        }

    @classmethod
    def from_record(cls, record) -> "Ballot":
        return cls(int(record["sequence"]), decode_int(record["ciphertext"]),
                   record["received_at"], record["digest"])


class BallotSession:
    """
    Tally-side view of one vote. Holds only the public key; the private key
    passes through `finalize` and is never kept.
    """

    def __init__(self, session_id: str, public_key: PublicKey, config: Optional[TallyConfig] = None,
                 ballots=None, status=SessionStatus.OPEN, aggregate=None, result=None,
                 created_at=None, closed_at=None):
        if isinstance(public_key, (PrivateKey, KeyPair)):
            raise KeyBoundaryError("A ballot session only ever holds the public key")
        if not isinstance(public_key, PublicKey):
            raise TypeError("public_key must be a PublicKey")
        self.config = config or DEFAULT_CONFIG
        self.session_id = session_id
        self.public_key = public_key
        self.ballots: List[Ballot] = list(ballots or [])
        self.status = status
        self.aggregate: Optional[int] = aggregate
        self.result: Optional[int] = result
        self.created_at = created_at or _now()
        self.closed_at = closed_at

    @classmethod
    def open(cls, public_key, config: Optional[TallyConfig] = None) -> "BallotSession":
        """Start a new session in state OPEN under a fresh random id."""
        cfg = (config or DEFAULT_CONFIG).session
        session_id = cfg.SESSION_ID_PREFIX + secrets.token_hex(cfg.SESSION_ID_BYTES)
        return cls(session_id, public_key, config=config)

    @property
    def ballot_count(self) -> int:
        return len(self.ballots)

    # ── Transitions ─────────────────────────────────────────────────────────

    def submit(self, ciphertext) -> int:
        """Append one ciphertext; returns the ballot count after the append."""
        if self.status is not SessionStatus.OPEN:
            raise SessionClosedError(
                f"Session {self.session_id} is {self.status.value}; no more ballots accepted",
                self.status)
        if isinstance(ciphertext, bool) or not isinstance(ciphertext, int):
            raise InvalidCiphertextError("Ciphertext must be an integer")
        if not 0 <= ciphertext < self.public_key.n_square:
            raise InvalidCiphertextError("Ciphertext outside [0, n^2)")
        if math.gcd(ciphertext, self.public_key.n) != 1:
            raise InvalidCiphertextError("Ciphertext is not a unit modulo n^2")
        if self.ballot_count >= self.config.session.MAX_BALLOTS:
            raise BallotLimitError(f"Session already holds {self.ballot_count} ballots")

        self.ballots.append(Ballot(self.ballot_count, ciphertext, _now(), digest(ciphertext)))
        return self.ballot_count

    def verify_ballots(self):
        """Raise InvalidCiphertextError for the first ballot whose digest no longer matches."""
        for ballot in self.ballots:
            if digest(ballot.ciphertext) != ballot.digest:
                raise InvalidCiphertextError(
                    f"Ballot #{ballot.sequence} of {self.session_id} fails its receipt digest")

    def tally(self) -> int:
        """
        Fold all ballots into the aggregate ciphertext. Allowed while OPEN,
        TALLYING or TALLIED; re-running it re-folds to the same aggregate.
        """
        if self.status is SessionStatus.CLOSED:
            raise SessionClosedError(f"Session {self.session_id} is closed", self.status)
        if not self.ballots:
            raise EmptyTallyError(f"Session {self.session_id} has no ballots to tally")

        previous = self.status
        self.status = SessionStatus.TALLYING
        try:
            self.verify_ballots()
            aggregate = fold([b.ciphertext for b in self.ballots], self.public_key)
            if self.aggregate is not None and aggregate != self.aggregate:
                raise InternalInvariantError(
                    f"Re-folding {self.session_id} produced a different aggregate")
        except Exception:
            self.status = previous
            raise
        self.aggregate = aggregate
        self.status = SessionStatus.TALLIED
        return aggregate

    def finalize(self, private_key: PrivateKey) -> int:
        """Decrypt the aggregate with the authority's private key and close the session."""
        if self.status is SessionStatus.CLOSED:
            raise SessionClosedError(f"Session {self.session_id} is already closed", self.status)
        if self.status is not SessionStatus.TALLIED:
            raise IllegalTransitionError(
                f"Session {self.session_id} is {self.status.value}; tally before finalizing",
                self.status)
        if not isinstance(private_key, PrivateKey):
            raise TypeError("finalize needs a PrivateKey")

        total = decrypt(self.aggregate, private_key, self.public_key)
        # Binary ballots can never sum past the ballot count
        if total > self.ballot_count:
            raise DecryptionError(
                f"Decrypted tally {preview(total, 20)} exceeds {self.ballot_count} ballots; "
                "ciphertexts corrupted or key mismatch")
        self.result = total
        self.status = SessionStatus.CLOSED
        self.closed_at = _now()
        return total

    # ── Views ───────────────────────────────────────────────────────────────

    def results(self):
        """YES / NO / total counts once the session is closed."""
        if self.status is not SessionStatus.CLOSED:
            raise IllegalTransitionError(
                f"Session {self.session_id} has no results while {self.status.value}", self.status)
        return {"yes": self.result, "no": self.ballot_count - self.result, "total": self.ballot_count}

    def snapshot(self):
        """Caller-facing view: numbers as strings, ciphertexts only as previews."""
        fmt = self.config.crypto.NUMBER_ENCODING
        width = self.config.session.PREVIEW_CHARS
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "closed_at": self.closed_at,
            "public_key": self.public_key.to_dict(fmt),
            "ballot_count": self.ballot_count,
            "ballots": [
                {"sequence": b.sequence, "encrypted": preview(b.ciphertext, width),
                 "received_at": b.received_at}
                for b in self.ballots
            ],
            "aggregate": None if self.aggregate is None else encode_int(self.aggregate, fmt),
            "result": self.result,
        }

    # ── Store records ───────────────────────────────────────────────────────

    def to_record(self):
        fmt = self.config.crypto.NUMBER_ENCODING
        return {
            "session_id": self.session_id,
            "public_key": self.public_key.to_dict(fmt),
            "status": self.status.value,
            "created_at": self.created_at,
            "closed_at": self.closed_at,
            "ballots": [b.to_record(fmt) for b in self.ballots],
            "aggregate": None if self.aggregate is None else encode_int(self.aggregate, fmt),
            "result": None if self.result is None else encode_int(self.result, fmt),
        }

    @classmethod
    def from_record(cls, record, config: Optional[TallyConfig] = None) -> "BallotSession":
        aggregate, result = record.get("aggregate"), record.get("result")
        return cls(
            record["session_id"],
            PublicKey.from_dict(record["public_key"]),
            config=config,
            ballots=[Ballot.from_record(b) for b in record.get("ballots", [])],
            status=SessionStatus(record["status"]),
            aggregate=None if aggregate is None else decode_int(aggregate),
            result=None if result is None else decode_int(result),
            created_at=record.get("created_at"),
            closed_at=record.get("closed_at"),
        )
