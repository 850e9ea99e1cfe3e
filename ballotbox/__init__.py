# ballotbox/__init__.py
#
# Additive-homomorphic (Paillier) ballot tally engine: an authority holds the
# private key, a tally server folds encrypted binary ballots, voters encrypt
# locally.

from .errors import (
    TallyError, InternalInvariantError, PrimeGenerationError, NotInvertibleError,
    ProtocolError, InvalidCiphertextError, InvalidPlaintextError, InvalidVoteError,
    EmptyTallyError, BallotLimitError, KeyBoundaryError, InvalidPublicKeyError, SessionNotFoundError,
    IllegalTransitionError, SessionClosedError, ConfigurationError, DecryptionError,
)
from .paillier import PublicKey, PrivateKey, KeyPair, generate_key_pair, encrypt, decrypt, fold
from .session import BallotSession, SessionStatus
from .store import SessionStore, MemorySessionStore, SqliteSessionStore
from .server import TallyServer
from .authority import Authority
from .client import VoterClient, encrypt_vote, load_public_key

__version__ = "0.1.0"
