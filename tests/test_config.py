"""Tests for the configuration sections."""

import unittest

from ballotbox.config import DEFAULT_CONFIG, TallyConfig
from ballotbox.errors import ConfigurationError


class TestTallyConfig(unittest.TestCase):

    def setUp(self):
        self.lines = []

    def test_defaults(self):
        config = TallyConfig()
        self.assertEqual(config.crypto.KEY_BITS, 2048)
        self.assertEqual(config.crypto.MIN_KEY_BITS, 2048)
        self.assertEqual(config.crypto.MILLER_RABIN_ROUNDS, 64)
        self.assertEqual(config.session.PREVIEW_CHARS, 50)
        self.assertEqual(config.storage.BACKEND, "memory")
        self.assertTrue(config.validate(self.lines.append))
        self.assertEqual(self.lines, [])

    def test_for_testing(self):
        config = TallyConfig.for_testing(128)
        self.assertEqual(config.crypto.KEY_BITS, 128)
        self.assertEqual(config.crypto.MIN_KEY_BITS, 64)
        self.assertEqual(config.crypto.MILLER_RABIN_ROUNDS, 64)
        self.assertTrue(config.validate(self.lines.append))
        # sections are per instance
        self.assertEqual(DEFAULT_CONFIG.crypto.MIN_KEY_BITS, 2048)

    def test_dict_round_trip(self):
        config = TallyConfig.for_testing(256)
        config.crypto.NUMBER_ENCODING = "hex"
        config.storage.BACKEND = "sqlite"
        restored = TallyConfig.from_dict(config.to_dict())
        self.assertEqual(restored.to_dict(), config.to_dict())

    def test_from_partial_dict(self):
        config = TallyConfig.from_dict({"session": {"max_ballots": 500}})
        self.assertEqual(config.session.MAX_BALLOTS, 500)
        self.assertEqual(config.crypto.KEY_BITS, 2048)

    def test_invalid_configs(self):
        cases = [
            ("crypto", "MILLER_RABIN_ROUNDS", 10),
            ("crypto", "KEY_BITS", 1024),
            ("crypto", "NUMBER_ENCODING", "base64"),
            ("session", "SESSION_ID_BYTES", 4),
            ("storage", "BACKEND", "redis"),
        ]
        for section, field, value in cases:
            config = TallyConfig()
            setattr(getattr(config, section), field, value)
            lines = []
            self.assertFalse(config.validate(lines.append), field)
            self.assertTrue(lines[0].startswith("Configuration validation failed"))

    def test_ballot_limit_must_fit_modulus(self):
        config = TallyConfig.for_testing(64)
        config.session.MAX_BALLOTS = 2 ** 70
        self.assertFalse(config.validate(self.lines.append))

    def test_problems_lists_every_violation(self):
        """Every violated constraint is reported"""
        config = TallyConfig()
        config.crypto.NUMBER_ENCODING = "b64"
        config.session.MAX_BALLOTS = -1
        problems = config.problems()
        self.assertIn("Number encoding must be 'dec' or 'hex'", problems)
        self.assertIn("Max ballots must be positive", problems)
        self.assertFalse(config.validate(self.lines.append))
        self.assertIn("Max ballots must be positive", self.lines[0])
        self.assertEqual(TallyConfig().problems(), [])

    def test_require_valid(self):
        config = TallyConfig.for_testing(256)
        self.assertIs(config.require_valid(self.lines.append), config)
        config.storage.BACKEND = "redis"
        with self.assertRaises(ConfigurationError) as ctx:
            config.require_valid(self.lines.append)
        self.assertIn("Unknown storage backend", str(ctx.exception))
        self.assertFalse(ctx.exception.fatal)


if __name__ == "__main__":
    unittest.main()
