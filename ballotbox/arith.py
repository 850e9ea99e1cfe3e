# arith.py
#
# Arbitrary-precision integer primitives underneath the Paillier scheme:
# primality testing, random prime generation, modular exponentiation and
# modular inverse. Pure functions, no shared state. All randomness comes
# from the `secrets` CSPRNG.

import math
import secrets

from .errors import PrimeGenerationError, NotInvertibleError

DEFAULT_ROUNDS = 64

SMALL_PRIMES = (
    2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47, 53, 59, 61, 67,
    71, 73, 79, 83, 89, 97, 101, 103, 107, 109, 113, 127, 131, 137, 139, 149,
    151, 157, 163, 167, 173, 179, 181, 191, 193, 197, 199, 211, 223, 227, 229,
)


def is_prime(n, rounds=DEFAULT_ROUNDS):
    """
    Miller–Rabin primality test.
    - n: integer to test
    - rounds: number of random bases; a composite survives with
      probability at most 4^-rounds
    Returns True if n is (probably) prime, False otherwise.
    """
    if n < 2:
        return False
    # Quick check for small prime divisors
    for p in SMALL_PRIMES:
        if n % p == 0:
            return n == p
    # Write n-1 as 2^s * d
    s, d = 0, n - 1
    while d % 2 == 0:
        s += 1
        d //= 2
    for _ in range(rounds):
        a = 2 + secrets.randbelow(n - 3)  # a in [2, n-2]
        x = pow(a, d, n)
        if x in (1, n - 1):
            continue
        for _ in range(s - 1):
            x = pow(x, 2, n)
            if x == n - 1:
                break
        else:
            return False
    return True


def random_prime(bits, rounds=DEFAULT_ROUNDS, max_attempts=None):
    """
    Generate a random prime of exactly `bits` bits with its top two bits set.
    - bits: bit length of the prime (>= 2)
    - rounds: Miller–Rabin rounds per candidate
    - max_attempts: candidates to try before raising PrimeGenerationError
      (defaults to 50 per bit)
    """
    if bits < 2:
        raise ValueError("A prime needs at least 2 bits")
    if max_attempts is None:
        max_attempts = 50 * bits
    top = 3 << (bits - 2)
    for _ in range(max_attempts):
        # Top two bits set: exact size, and the product of two such primes
        # has exactly the sum of their sizes. Low bit set for oddness.
        candidate = secrets.randbits(bits) | top | 1
        if is_prime(candidate, rounds):
            return candidate
    raise PrimeGenerationError(
        f"No {bits}-bit prime found in {max_attempts} candidates"
    )


def mod_pow(base, exponent, modulus):
    """
    Modular exponentiation with a Montgomery ladder: every exponent bit
    costs one multiply and one square whichever its value, so the sequence
    of operations does not depend on secret exponent bits.
    """
    if modulus < 1:
        raise ValueError("Modulus must be positive")
    if exponent < 0:
        raise ValueError("Negative exponents are not supported; use mod_inverse")
    r0, r1 = 1 % modulus, base % modulus
    for i in reversed(range(exponent.bit_length())):
        if (exponent >> i) & 1:
            r0, r1 = (r0 * r1) % modulus, (r1 * r1) % modulus
        else:
            r0, r1 = (r0 * r0) % modulus, (r0 * r1) % modulus
    return r0


def lcm(a, b):
    """Compute least common multiple of a and b."""
    return a * b // math.gcd(a, b)


def egcd(a, b):
    """
    Extended Euclidean algorithm.
    Returns (g, x, y) such that a*x + b*y = g = gcd(a, b).
    """
    x0, x1, y0, y1 = 1, 0, 0, 1
    while b:
        q, a, b = a // b, b, a % b
        x0, x1 = x1, x0 - q * x1
        y0, y1 = y1, y0 - q * y1
    return a, x0, y0


def mod_inverse(a, modulus):
    """
    Modular inverse: find x such that (a * x) % modulus == 1.
    Raises NotInvertibleError if gcd(a, modulus) != 1.
    """
    if modulus < 1:
        raise ValueError("Modulus must be positive")
    g, x, _ = egcd(a % modulus, modulus)
    if g != 1:
        # operands may be key material; keep them out of the message
        raise NotInvertibleError(f"No inverse modulo a {modulus.bit_length()}-bit modulus")
    return x % modulus
