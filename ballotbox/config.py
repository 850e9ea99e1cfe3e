"""
Configuration module for the ballot tally engine.

This module contains all configurable parameters and constants
used throughout the tally engine so that key sizes, primality
rounds and session limits are set in one place.
"""

from dataclasses import dataclass
from typing import Dict, Any, List

from .errors import ConfigurationError
from .log import make_logger


@dataclass
class CryptoConfig:
    """Cryptographic configuration parameters"""

    # Paillier modulus size
    KEY_BITS: int = 2048
    MIN_KEY_BITS: int = 2048

    # Miller-Rabin rounds: failure probability <= 4^-rounds
    MILLER_RABIN_ROUNDS: int = 64

    # Candidates tried per bit of prime length before giving up
    PRIME_ATTEMPTS_PER_BIT: int = 50

    # Full (p, q) draws before key generation gives up
    KEYGEN_ATTEMPTS: int = 64

    # "dec" or "hex" for numbers leaving the engine
    NUMBER_ENCODING: str = "dec"


@dataclass
class SessionConfig:
    """Ballot session parameters"""

    MAX_BALLOTS: int = 1_000_000
    SESSION_ID_PREFIX: str = "session_"
    SESSION_ID_BYTES: int = 16
    PREVIEW_CHARS: int = 50

    # Repeated failed decryptions on one session are escalated
    DECRYPTION_FAILURE_ESCALATION: int = 3


@dataclass
class StorageConfig:
    """Session store parameters"""

    BACKEND: str = "memory"
    SQLITE_PATH: str = ":memory:"


class TallyConfig:
    """Main configuration class combining all config sections"""

    def __init__(self):
        self.crypto = CryptoConfig()
        self.session = SessionConfig()
        self.storage = StorageConfig()

    @classmethod
    def for_testing(cls, key_bits: int = 512) -> 'TallyConfig':
        """Configuration allowing small fixture keys. Never use in production."""
        config = cls()
        config.crypto.KEY_BITS = key_bits
        config.crypto.MIN_KEY_BITS = min(64, key_bits)
        config.session.MAX_BALLOTS = 10_000
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization"""
        return {
            'crypto': {
                'key_bits': self.crypto.KEY_BITS,
                'min_key_bits': self.crypto.MIN_KEY_BITS,
                'miller_rabin_rounds': self.crypto.MILLER_RABIN_ROUNDS,
                'prime_attempts_per_bit': self.crypto.PRIME_ATTEMPTS_PER_BIT,
                'keygen_attempts': self.crypto.KEYGEN_ATTEMPTS,
                'number_encoding': self.crypto.NUMBER_ENCODING,
            },
            'session': {
                'max_ballots': self.session.MAX_BALLOTS,
                'session_id_prefix': self.session.SESSION_ID_PREFIX,
                'session_id_bytes': self.session.SESSION_ID_BYTES,
                'preview_chars': self.session.PREVIEW_CHARS,
                'decryption_failure_escalation': self.session.DECRYPTION_FAILURE_ESCALATION,
            },
            'storage': {
                'backend': self.storage.BACKEND,
                'sqlite_path': self.storage.SQLITE_PATH,
            }
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'TallyConfig':
        """Create configuration from dictionary"""
        config = cls()

        if 'crypto' in config_dict:
            crypto_config = config_dict['crypto']
            config.crypto.KEY_BITS = crypto_config.get('key_bits', config.crypto.KEY_BITS)
            config.crypto.MIN_KEY_BITS = crypto_config.get('min_key_bits', config.crypto.MIN_KEY_BITS)
            config.crypto.MILLER_RABIN_ROUNDS = crypto_config.get('miller_rabin_rounds', config.crypto.MILLER_RABIN_ROUNDS)
            config.crypto.PRIME_ATTEMPTS_PER_BIT = crypto_config.get('prime_attempts_per_bit', config.crypto.PRIME_ATTEMPTS_PER_BIT)
            config.crypto.KEYGEN_ATTEMPTS = crypto_config.get('keygen_attempts', config.crypto.KEYGEN_ATTEMPTS)
            config.crypto.NUMBER_ENCODING = crypto_config.get('number_encoding', config.crypto.NUMBER_ENCODING)

        if 'session' in config_dict:
            session_config = config_dict['session']
            config.session.MAX_BALLOTS = session_config.get('max_ballots', config.session.MAX_BALLOTS)
            config.session.SESSION_ID_PREFIX = session_config.get('session_id_prefix', config.session.SESSION_ID_PREFIX)
            config.session.SESSION_ID_BYTES = session_config.get('session_id_bytes', config.session.SESSION_ID_BYTES)
            config.session.PREVIEW_CHARS = session_config.get('preview_chars', config.session.PREVIEW_CHARS)
            config.session.DECRYPTION_FAILURE_ESCALATION = session_config.get(
                'decryption_failure_escalation', config.session.DECRYPTION_FAILURE_ESCALATION)

        if 'storage' in config_dict:
            storage_config = config_dict['storage']
            config.storage.BACKEND = storage_config.get('backend', config.storage.BACKEND)
            config.storage.SQLITE_PATH = storage_config.get('sqlite_path', config.storage.SQLITE_PATH)

        return config

    def problems(self) -> List[str]:
        """Every broken constraint, as messages; empty when the config is usable."""
        crypto, session, storage = self.crypto, self.session, self.storage
        checks = [
            # Crypto parameters
            (crypto.MIN_KEY_BITS >= 16, "Minimum key size too small to hold a tally"),
            (crypto.KEY_BITS >= crypto.MIN_KEY_BITS, "Key size below configured minimum"),
            (crypto.MILLER_RABIN_ROUNDS >= 64, "Need >= 64 Miller-Rabin rounds for 2^-128 error"),
            (crypto.PRIME_ATTEMPTS_PER_BIT > 0, "Prime attempts must be positive"),
            (crypto.KEYGEN_ATTEMPTS > 0, "Keygen attempts must be positive"),
            (crypto.NUMBER_ENCODING in ("dec", "hex"), "Number encoding must be 'dec' or 'hex'"),

            # Session parameters; n >= 2^(MIN_KEY_BITS-1) must exceed any ballot count
            (session.MAX_BALLOTS > 0, "Max ballots must be positive"),
            (session.MAX_BALLOTS > 0 and crypto.MIN_KEY_BITS >= 1
             and 2 ** (crypto.MIN_KEY_BITS - 1) > session.MAX_BALLOTS,
             "Modulus cannot be guaranteed to exceed the ballot limit"),
            (session.SESSION_ID_BYTES >= 8, "Session ids too short"),
            (session.PREVIEW_CHARS > 0, "Preview width must be positive"),
            (session.DECRYPTION_FAILURE_ESCALATION > 0, "Escalation threshold must be positive"),

            # Storage parameters
            (storage.BACKEND in ("memory", "sqlite"), "Unknown storage backend"),
            (bool(storage.SQLITE_PATH), "SQLite path must not be empty"),
        ]
        return [message for ok, message in checks if not ok]

    def validate(self, logger=None) -> bool:
        """Validate configuration parameters"""
        errors = self.problems()
        if errors:
            log = logger or make_logger("Config")
            log(f"Configuration validation failed: {'; '.join(errors)}")
            return False
        return True

    def require_valid(self, logger=None) -> 'TallyConfig':
        """Validate, raising ConfigurationError instead of returning False."""
        if not self.validate(logger):
            raise ConfigurationError("Invalid configuration: " + "; ".join(self.problems()))
        return self


# Global configuration instance
DEFAULT_CONFIG = TallyConfig()
