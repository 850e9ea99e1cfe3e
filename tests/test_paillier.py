"""Tests for Paillier key generation, encryption, decryption and the fold."""

import itertools
import math
import random
import unittest

from ballotbox.config import TallyConfig
from ballotbox.errors import (
    DecryptionError, EmptyTallyError, InvalidCiphertextError, InvalidPlaintextError,
)
from ballotbox.paillier import (
    PublicKey, PrivateKey, KeyPair, generate_key_pair, encrypt, decrypt, fold,
)

CONFIG = TallyConfig.for_testing(256)


class TestKeyGeneration(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pair = generate_key_pair(256, CONFIG)

    def test_public_key_shape(self):
        """n has the requested size and g = n + 1"""
        pk = self.pair.public_key
        self.assertEqual(pk.n.bit_length(), 256)
        self.assertEqual(pk.bits, 256)
        self.assertEqual(pk.g, pk.n + 1)
        self.assertEqual(pk.n_square, pk.n * pk.n)

    def test_private_key_invariants(self):
        """gcd(n, λ) = 1 and μ inverts L(g^λ mod n^2)"""
        pk, sk = self.pair.public_key, self.pair.private_key
        self.assertEqual(math.gcd(pk.n, sk.lam), 1)
        u = pow(pk.g, sk.lam, pk.n_square)
        self.assertEqual((u - 1) % pk.n, 0)
        self.assertEqual((((u - 1) // pk.n) * sk.mu) % pk.n, 1)

    def test_odd_bit_length(self):
        pair = generate_key_pair(129, CONFIG)
        self.assertEqual(pair.public_key.bits, 129)

    def test_every_prime_pair_reaches_full_size(self):
        """One (p, q) draw is enough: |pq| always equals the requested size"""
        config = TallyConfig.for_testing(256)
        config.crypto.KEYGEN_ATTEMPTS = 1
        for _ in range(5):
            self.assertEqual(generate_key_pair(256, config).public_key.bits, 256)

    def test_default_size_comes_from_config(self):
        config = TallyConfig.for_testing(128)
        self.assertEqual(generate_key_pair(config=config).public_key.bits, 128)

    def test_minimum_key_size_enforced(self):
        """Production config refuses anything under 2048 bits"""
        with self.assertRaises(ValueError):
            generate_key_pair(1024, TallyConfig())

    def test_fresh_keys_each_time(self):
        other = generate_key_pair(256, CONFIG)
        self.assertNotEqual(other.public_key.n, self.pair.public_key.n)

    def test_private_key_repr_is_redacted(self):
        text = repr(self.pair.private_key) + repr(self.pair)
        self.assertNotIn(str(self.pair.private_key.lam), text)
        self.assertNotIn(str(self.pair.private_key.mu), text)

    def test_keys_cannot_be_built_invalid(self):
        """No zero / null / mismatched key objects"""
        with self.assertRaises(TypeError):
            PublicKey(None, None)
        with self.assertRaises(ValueError):
            PublicKey(0, 1)
        with self.assertRaises(ValueError):
            PublicKey(self.pair.public_key.n, 2)
        with self.assertRaises(ValueError):
            PrivateKey(0, 5)
        with self.assertRaises(TypeError):
            PrivateKey(True, 5)
        other = generate_key_pair(256, CONFIG)
        with self.assertRaises(ValueError):
            KeyPair(self.pair.public_key, other.private_key)

    def test_key_dict_round_trip(self):
        for fmt in ("dec", "hex"):
            data = self.pair.to_dict(fmt)
            self.assertIsInstance(data["public_key"]["n"], str)
            if fmt == "hex":
                self.assertTrue(data["private_key"]["lam"].startswith("0x"))
            self.assertEqual(KeyPair.from_dict(data), self.pair)


class TestCipher(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pair = generate_key_pair(256, CONFIG)
        cls.pk = cls.pair.public_key
        cls.sk = cls.pair.private_key

    def test_binary_round_trip(self):
        """decrypt(encrypt(m)) = m for m in {0, 1}"""
        for m in (0, 1):
            for _ in range(5):
                c = encrypt(m, self.pk)
                self.assertTrue(0 <= c < self.pk.n_square)
                self.assertEqual(decrypt(c, self.sk, self.pk), m)

    def test_cipher_accepts_full_plaintext_range(self):
        """The 0/1 restriction is protocol policy, not the cipher's"""
        for m in (2, 12345, self.pk.n - 1):
            self.assertEqual(decrypt(encrypt(m, self.pk), self.sk, self.pk), m)

    def test_plaintext_out_of_range(self):
        for m in (-1, self.pk.n, 1.0, "1", True):
            with self.assertRaises(InvalidPlaintextError):
                encrypt(m, self.pk)

    def test_semantic_security_smoke(self):
        """Same plaintext, fresh randomness, different ciphertexts"""
        ciphertexts = {encrypt(1, self.pk) for _ in range(10)}
        self.assertEqual(len(ciphertexts), 10)

    def test_decrypt_rejects_out_of_range(self):
        for c in (-1, self.pk.n_square, self.pk.n_square + 5):
            with self.assertRaises(DecryptionError):
                decrypt(c, self.sk, self.pk)

    def test_decrypt_rejects_non_units(self):
        """gcd(c, n^2) != 1 is not a ciphertext"""
        for c in (0, self.pk.n, 2 * self.pk.n):
            with self.assertRaises(DecryptionError):
                decrypt(c, self.sk, self.pk)

    def test_decrypt_with_mismatched_key(self):
        other = generate_key_pair(256, CONFIG)
        c = encrypt(1, self.pk)
        with self.assertRaises(DecryptionError):
            decrypt(c, other.private_key, self.pk)


class TestFold(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pair = generate_key_pair(256, CONFIG)
        cls.pk = cls.pair.public_key
        cls.sk = cls.pair.private_key

    def test_homomorphic_sum(self):
        """decrypt(fold(encrypt(m_i))) = sum(m_i)"""
        rng = random.Random(7)
        for size in (1, 2, 9, 40):
            votes = [rng.randint(0, 1) for _ in range(size)]
            agg = fold([encrypt(v, self.pk) for v in votes], self.pk)
            self.assertEqual(decrypt(agg, self.sk, self.pk), sum(votes))

    def test_fold_order_independent(self):
        """Every permutation of the ciphertexts folds to the same value"""
        ciphertexts = [encrypt(v, self.pk) for v in (1, 0, 1, 1)]
        expected = fold(ciphertexts, self.pk)
        for perm in itertools.permutations(ciphertexts):
            self.assertEqual(fold(list(perm), self.pk), expected)

    def test_fold_accepts_generators(self):
        ciphertexts = [encrypt(1, self.pk) for _ in range(3)]
        self.assertEqual(fold(iter(ciphertexts), self.pk), fold(ciphertexts, self.pk))

    def test_fold_empty(self):
        with self.assertRaises(EmptyTallyError):
            fold([], self.pk)

    def test_fold_out_of_range(self):
        good = encrypt(1, self.pk)
        with self.assertRaises(InvalidCiphertextError) as ctx:
            fold([good, self.pk.n_square], self.pk)
        self.assertIn("#1", str(ctx.exception))
        with self.assertRaises(InvalidCiphertextError):
            fold([-3], self.pk)

    def test_corrupted_fold_never_silently_wrong(self):
        """A flipped byte is rejected by range checks or by decryption"""
        votes = [1, 1, 0, 1, 0]
        ciphertexts = [encrypt(v, self.pk) for v in votes]
        raw = bytearray(ciphertexts[2].to_bytes((self.pk.n_square.bit_length() + 7) // 8, "big"))
        raw[len(raw) // 2] ^= 0xFF
        ciphertexts[2] = int.from_bytes(raw, "big")
        try:
            total = decrypt(fold(ciphertexts, self.pk), self.sk, self.pk)
        except (InvalidCiphertextError, DecryptionError):
            return
        # The bare cipher cannot tell; the wrong value is far outside any ballot count
        self.assertNotEqual(total, sum(votes))
        self.assertGreater(total, len(votes))


if __name__ == "__main__":
    unittest.main()
