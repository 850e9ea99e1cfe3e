# errors.py
#
# Error taxonomy for the tally engine. Every error carries a `fatal` flag:
# fatal errors are broken internal invariants (a bug or exhausted randomness),
# the rest are protocol-usage or input problems reported back to the caller.


class TallyError(Exception):
    """Base exception for every failure raised by the tally engine."""

    fatal = False


# ── Internal invariants (fatal) ─────────────────────────────────────────────

class InternalInvariantError(TallyError):
    """An invariant that holds by construction was violated."""

    fatal = True


class PrimeGenerationError(InternalInvariantError):
    """No prime was found within the allowed number of candidates."""


class NotInvertibleError(InternalInvariantError):
    """Modular inverse requested for a value not coprime to the modulus."""


# ── Protocol usage and client input (recoverable) ───────────────────────────

class ProtocolError(TallyError):
    """The caller asked for something the protocol does not allow."""


class InvalidCiphertextError(ProtocolError):
    """A ciphertext is malformed, out of [0, n^2) or fails its digest."""


class InvalidPlaintextError(ProtocolError):
    """A plaintext outside [0, n) was handed to the cipher."""


class InvalidVoteError(ProtocolError):
    """A voter tried to encrypt something other than 0 or 1."""


class EmptyTallyError(ProtocolError):
    """There is no meaningful tally over zero ballots."""


class BallotLimitError(ProtocolError):
    """The session already holds the configured maximum number of ballots."""


class KeyBoundaryError(ProtocolError):
    """Private key material reached the aggregation side or its store."""


class InvalidPublicKeyError(ProtocolError):
    """A public key handed to the server is incomplete or malformed."""


class SessionNotFoundError(ProtocolError, KeyError):
    """No session is stored under the given id."""

    def __str__(self):
        return Exception.__str__(self)


class IllegalTransitionError(ProtocolError):
    """The session is not in a state that allows the operation."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class SessionClosedError(IllegalTransitionError):
    """The session no longer accepts the operation (tallying has begun)."""


# ── Configuration ───────────────────────────────────────────────────────────

class ConfigurationError(TallyError):
    """A component was built with a configuration that fails validation."""


# ── Decryption ──────────────────────────────────────────────────────────────

class DecryptionError(TallyError):
    """
    Decryption failed: the ciphertext is corrupted, was maliciously crafted,
    or the private key does not belong to the public key.
    """
