"""Smoke tests for the benchmark runner."""

import os
import tempfile
import unittest

import matplotlib
matplotlib.use("Agg")

from ballotbox.log import null_logger
from ballotbox.metrics import plot_metrics, run_metrics


class TestMetrics(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.df = run_metrics(key_sizes=(128,), ballot_counts=(3, 5), n_runs=1, log=null_logger)

    def test_columns_and_correctness(self):
        self.assertEqual(len(self.df), 2)
        for column in ("key_bits", "ballots", "keygen_avg", "encrypt_avg", "submit_avg",
                       "tally_avg", "finalize_avg", "encrypt_per_ballot", "all_correct"):
            self.assertIn(column, self.df.columns)
        self.assertTrue(self.df["all_correct"].all())
        self.assertEqual(list(self.df["ballots"]), [3, 5])

    def test_plot_writes_figures(self):
        with tempfile.TemporaryDirectory() as tmp:
            paths = plot_metrics(self.df, tmp)
            self.assertEqual([os.path.basename(p) for p in paths], ["tally_128bit.png"])
            self.assertGreater(os.path.getsize(paths[0]), 0)


if __name__ == "__main__":
    unittest.main()
