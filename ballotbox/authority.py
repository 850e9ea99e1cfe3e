# authority.py
#
# The Authority is the decrypting party. It generates every Paillier key pair
# inside its own boundary, hands only the public half to the tally server,
# and keeps the private half in its keyring until it finalizes the tally.

import json
import os
import threading
import time
from typing import Optional

from .codec import encode_int
from .config import TallyConfig, DEFAULT_CONFIG
from .errors import SessionNotFoundError
from .log import make_logger
from .paillier import KeyPair, PublicKey, PrivateKey, generate_key_pair


class Authority:
    """Key manager and sole decryptor for the sessions it opened."""

    def __init__(self, config: Optional[TallyConfig] = None, logger=None):
        self.logger = logger or make_logger("Authority")
        self.config = (config or DEFAULT_CONFIG).require_valid(self.logger)
        self._keyring = {}  # session_id -> KeyPair
        self._lock = threading.Lock()

    # ── Key lifecycle ───────────────────────────────────────────────────────

    def generate(self, bits=None) -> KeyPair:
        """Generate a fresh key pair (CPU-bound; safe to run on a worker thread)."""
        t0 = time.time()
        pair = generate_key_pair(bits, self.config)
        self.logger(f"Paillier key pair generated ({pair.public_key.bits}-bit modulus) "
                    f"in {time.time() - t0:.2f}s")
        return pair

    def open_session(self, server, bits=None):
        """
        Open a tally session:
          1. generate the key pair here
          2. register only the public key with the tally server
          3. keep the pair in the keyring under the new session id
        Returns (session_id, public_key).
        """
        pair = self.generate(bits)
        session_id = server.open_session(pair.public_key)
        with self._lock:
            self._keyring[session_id] = pair
        self.logger(f"Session {session_id} opened; private key kept by the authority")
        return session_id, pair.public_key

    def _pair(self, session_id) -> KeyPair:
        with self._lock:
            try:
                return self._keyring[session_id]
            except KeyError:
                raise SessionNotFoundError(f"No key pair held for session {session_id}") from None

    def public_key(self, session_id) -> PublicKey:
        return self._pair(session_id).public_key

    def private_key(self, session_id) -> PrivateKey:
        """Out-of-band access for the designated decryptor only."""
        return self._pair(session_id).private_key

    def sessions(self):
        with self._lock:
            return list(self._keyring)

    def forget(self, session_id):
        """Drop a session's key pair from the keyring. Export it first if it must survive."""
        with self._lock:
            if self._keyring.pop(session_id, None) is None:
                raise SessionNotFoundError(f"No key pair held for session {session_id}")
        self.logger(f"Key pair for {session_id} forgotten")

    def finalize(self, server, session_id, forget=False) -> int:
        """
        Decrypt the session's folded tally and close it. Returns the YES count.
        With forget=True the key pair leaves the keyring once the session is closed.
        """
        total = server.finalize(session_id, self.private_key(session_id))
        self.logger(f"Session {session_id} finalized")
        if forget:
            self.forget(session_id)
        return total

    # ── Files ───────────────────────────────────────────────────────────────

    def write_public_key(self, session_id, path):
        """Write the Paillier public parameters (n, g), one per line."""
        pk = self.public_key(session_id)
        with open(path, "w") as f:
            f.write(f"{encode_int(pk.n)}\n{encode_int(pk.g)}\n")
        self.logger(f"Public key for {session_id} written to {os.path.basename(path)}")

    def export_keys(self, session_id, path):
        """
        Back up a session's key pair to a JSON file readable only by the
        owner. This is the authority's own backup, never a session record.
        """
        pair = self._pair(session_id)
        payload = {
            "session_id": session_id,
            **pair.to_dict(self.config.crypto.NUMBER_ENCODING),
            "warning": "Keep the private key secure! Anyone with it can decrypt the tally.",
        }
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(payload, f)
        self.logger(f"Key pair for {session_id} exported")

    def import_keys(self, path) -> str:
        """Restore a key pair exported by `export_keys`; returns its session id."""
        with open(path) as f:
            payload = json.load(f)
        pair = KeyPair.from_dict(payload)
        session_id = payload["session_id"]
        with self._lock:
            self._keyring[session_id] = pair
        self.logger(f"Key pair for {session_id} imported")
        return session_id
