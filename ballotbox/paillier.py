# paillier.py
#
# Paillier additive-homomorphic encryption: typed key pair, key generation,
# encryption, decryption and the homomorphic fold (product of ciphertexts
# mod n^2 decrypts to the sum of the plaintexts).

import math
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional

from . import arith
from .codec import encode_int, decode_int
from .config import TallyConfig, DEFAULT_CONFIG
from .errors import (
    InternalInvariantError, PrimeGenerationError, InvalidPlaintextError,
    InvalidCiphertextError, EmptyTallyError, DecryptionError,
)


# ── Keys ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PublicKey:
    """Paillier public key (n, g). Safe to disclose."""
    n: int
    g: int

    def __post_init__(self):
        for name in ("n", "g"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"PublicKey.{name} must be an int")
        if self.n < 15 or self.n % 2 == 0:
            raise ValueError("Modulus n must be an odd composite of two primes")
        if self.g != self.n + 1:
            raise ValueError("Generator g must be n + 1")

    @property
    def n_square(self) -> int:
        return self.n * self.n

    @property
    def bits(self) -> int:
        return self.n.bit_length()

    def to_dict(self, fmt="dec"):
        return {"n": encode_int(self.n, fmt), "g": encode_int(self.g, fmt)}

    @classmethod
    def from_dict(cls, data) -> "PublicKey":
        return cls(decode_int(data["n"]), decode_int(data["g"]))


@dataclass(frozen=True, repr=False)
class PrivateKey:
    """Paillier private key (λ, μ). Held only by the decrypting authority."""
    lam: int
    mu: int

    def __post_init__(self):
        for name in ("lam", "mu"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"PrivateKey.{name} must be an int")
            if value < 1:
                raise ValueError(f"PrivateKey.{name} must be positive")

    def __repr__(self):
        return "PrivateKey(<redacted>)"

    def to_dict(self, fmt="dec"):
        return {"lam": encode_int(self.lam, fmt), "mu": encode_int(self.mu, fmt)}

    @classmethod
    def from_dict(cls, data) -> "PrivateKey":
        return cls(decode_int(data["lam"]), decode_int(data["mu"]))


@dataclass(frozen=True)
class KeyPair:
    """A matching public/private key pair, checked on construction."""
    public_key: PublicKey
    private_key: PrivateKey

    def __post_init__(self):
        if not isinstance(self.public_key, PublicKey) or not isinstance(self.private_key, PrivateKey):
            raise TypeError("KeyPair needs a PublicKey and a PrivateKey")
        n = self.public_key.n
        if math.gcd(n, self.private_key.lam) != 1 or self.private_key.mu >= n:
            raise ValueError("Private key does not match public key")
        u = arith.mod_pow(self.public_key.g, self.private_key.lam, self.public_key.n_square)
        l_value, rem = _l_function(u, n)
        if rem != 0 or (l_value * self.private_key.mu) % n != 1:
            raise ValueError("Private key does not match public key")

    def to_dict(self, fmt="dec"):
        return {"public_key": self.public_key.to_dict(fmt),
                "private_key": self.private_key.to_dict(fmt)}

    @classmethod
    def from_dict(cls, data) -> "KeyPair":
        return cls(PublicKey.from_dict(data["public_key"]),
                   PrivateKey.from_dict(data["private_key"]))


def _l_function(u, n):
    """L(u) = (u - 1) / n; returns (quotient, remainder) so callers can insist on exactness."""
    return divmod(u - 1, n)


# ── Key generation ──────────────────────────────────────────────────────────

def generate_key_pair(bit_length: Optional[int] = None, config: Optional[TallyConfig] = None) -> KeyPair:
    """
    Generate a Paillier key pair.
    - bit_length: bit length of the modulus n (defaults to config KEY_BITS)
    - config: TallyConfig supplying minimum size and primality rounds
    Returns a KeyPair with public (n, g = n + 1) and private (λ, μ).
    """
    crypto = (config or DEFAULT_CONFIG).crypto
    bits = crypto.KEY_BITS if bit_length is None else bit_length
    if bits < crypto.MIN_KEY_BITS:
        raise ValueError(f"{bits}-bit keys are below the configured minimum of {crypto.MIN_KEY_BITS}")

    p_bits = bits // 2
    q_bits = bits - p_bits
    rounds = crypto.MILLER_RABIN_ROUNDS

    # 1. Pick two distinct primes with gcd(pq, (p-1)(q-1)) = 1 and |n| = bits
    for _ in range(crypto.KEYGEN_ATTEMPTS):
        p = arith.random_prime(p_bits, rounds, crypto.PRIME_ATTEMPTS_PER_BIT * p_bits)
        q = arith.random_prime(q_bits, rounds, crypto.PRIME_ATTEMPTS_PER_BIT * q_bits)
        if p == q:
            continue
        n = p * q
        if n.bit_length() != bits or math.gcd(n, (p - 1) * (q - 1)) != 1:
            continue
        break
    else:
        raise PrimeGenerationError(f"No suitable prime pair for a {bits}-bit modulus")

    nsq = n * n
    g = n + 1

    # 2. λ = lcm(p-1, q-1)
    lam = arith.lcm(p - 1, q - 1)

    # 3. μ = (L(g^λ mod n^2))^{-1} mod n; L must divide exactly
    l_value, rem = _l_function(arith.mod_pow(g, lam, nsq), n)
    if rem != 0:
        raise InternalInvariantError("L(g^λ mod n^2) is not an exact division")
    mu = arith.mod_inverse(l_value, n)

    return KeyPair(PublicKey(n, g), PrivateKey(lam, mu))


# ── Cipher ──────────────────────────────────────────────────────────────────

def encrypt(plaintext, public_key: PublicKey) -> int:
    """
    Paillier encrypt integer m under public_key = (n, g).
    Encryption: c = g^m * r^n mod n^2, for fresh random r in [1, n), gcd(r, n) = 1.
    The cipher accepts any m in [0, n); narrowing to votes is the caller's job.
    """
    n, g = public_key.n, public_key.g
    nsq = public_key.n_square
    if isinstance(plaintext, bool) or not isinstance(plaintext, int) or not 0 <= plaintext < n:
        raise InvalidPlaintextError("Plaintext must be an integer in [0, n)")

    # pick random r coprime with n
    while True:
        r = 1 + secrets.randbelow(n - 1)
        if math.gcd(r, n) == 1:
            break

    return (arith.mod_pow(g, plaintext, nsq) * arith.mod_pow(r, n, nsq)) % nsq


def decrypt(ciphertext, private_key: PrivateKey, public_key: PublicKey) -> int:
    """
    Paillier decrypt ciphertext c using private_key = (λ, μ) and public_key = (n, g).
    Decryption: m = L(c^λ mod n^2) * μ mod n.
    Raises DecryptionError when c is not a unit below n^2 or the keys do not match.
    """
    n = public_key.n
    nsq = public_key.n_square
    if isinstance(ciphertext, bool) or not isinstance(ciphertext, int) or not 0 <= ciphertext < nsq:
        raise DecryptionError("Ciphertext outside [0, n^2)")
    if math.gcd(ciphertext, n) != 1:
        raise DecryptionError("Ciphertext is not an element of the ciphertext group")

    l_value, rem = _l_function(arith.mod_pow(ciphertext, private_key.lam, nsq), n)
    if rem != 0:
        raise DecryptionError("Private key does not match the ciphertext's public key")
    return (l_value * private_key.mu) % n


# ── Homomorphic aggregation ─────────────────────────────────────────────────

def fold(ciphertexts: Iterable[int], public_key: PublicKey) -> int:
    """
    Homomorphically aggregate ciphertexts (product mod n^2) to get an
    encryption of the sum of their plaintexts.
    Usage: given [c1, c2, ...], return c1 * c2 * ... mod n^2.
    """
    nsq = public_key.n_square
    agg = None
    for i, c in enumerate(ciphertexts):
        if isinstance(c, bool) or not isinstance(c, int) or not 0 <= c < nsq:
            raise InvalidCiphertextError(f"Ciphertext #{i} outside [0, n^2)")
        agg = c if agg is None else (agg * c) % nsq
    if agg is None:
        raise EmptyTallyError("Cannot fold an empty sequence of ciphertexts")
    return agg
