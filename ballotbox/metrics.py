#!/usr/bin/env python3
# metrics.py
#
# Benchmark of the full tally pipeline: key generation, ballot encryption,
# homomorphic tally and finalization, per key size and ballot count.
# Averages go into a pandas DataFrame; bar plots are written per key size.

import os
import secrets
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .authority import Authority
from .client import encrypt_vote
from .codec import encode_int
from .config import TallyConfig
from .log import make_logger, null_logger
from .server import TallyServer

# ── Configuration ──────────────────────────────────────────────────────────────
FIG_DIR = os.path.join(os.getcwd(), "figures")

N_RUNS = 3              # how many times to repeat each measurement
KEY_SIZES = (1024, 2048)
BALLOT_COUNTS = (10, 50, 100)
ENCRYPT_WORKERS = 4     # voters encrypt in parallel, like independent devices

logger = make_logger("Metrics")


def _timed(fn, *args):
    """Run fn(*args); return (result, seconds)."""
    t0 = time.perf_counter()
    out = fn(*args)
    return out, time.perf_counter() - t0


def run_election(bits, votes, config, pool):
    """
    One full election with fresh keys. Returns a dict of phase timings and
    whether the decrypted tally matched the plaintext votes.
    """
    authority = Authority(config, logger=null_logger)
    server = TallyServer(config=config, logger=null_logger)

    pair, t_keygen = _timed(authority.generate, bits)
    session_id = server.open_session(pair.public_key)

    # Encrypt on worker threads (pure function of the public key), submit serially
    t0 = time.perf_counter()
    ciphertexts = list(pool.map(lambda v: encrypt_vote(v, pair.public_key), votes))
    t_encrypt = time.perf_counter() - t0

    t0 = time.perf_counter()
    for c in ciphertexts:
        server.submit_ballot(session_id, encode_int(c))
    t_submit = time.perf_counter() - t0

    _, t_tally = _timed(server.compute_tally, session_id)
    total, t_final = _timed(server.finalize, session_id, pair.private_key)

    return {
        "keygen": t_keygen,
        "encrypt": t_encrypt,
        "submit": t_submit,
        "tally": t_tally,
        "finalize": t_final,
        "correct": total == sum(votes),
    }


def run_metrics(key_sizes=KEY_SIZES, ballot_counts=BALLOT_COUNTS, n_runs=N_RUNS, log=None):
    """
    Runs each (key size, ballot count) election n_runs times, records the
    average time of every phase and whether all tallies were correct.
    Returns a pandas DataFrame with one row per combination.
    """
    log = log or logger
    config = TallyConfig.for_testing(max(key_sizes))
    config.crypto.MIN_KEY_BITS = min(key_sizes)

    records = []
    with ThreadPoolExecutor(max_workers=ENCRYPT_WORKERS) as pool:
        for bits in key_sizes:
            for count in ballot_counts:
                runs = []
                for _ in range(n_runs):
                    votes = [secrets.randbelow(2) for _ in range(count)]
                    runs.append(run_election(bits, votes, config, pool))

                row = {"key_bits": bits, "ballots": count}
                for phase in ("keygen", "encrypt", "submit", "tally", "finalize"):
                    row[f"{phase}_avg"] = float(np.mean([r[phase] for r in runs]))
                row["encrypt_per_ballot"] = row["encrypt_avg"] / count
                row["all_correct"] = all(r["correct"] for r in runs)
                records.append(row)

                log(f"{bits}-bit, {count} ballots → keygen={row['keygen_avg']:.3f}s, "
                    f"encrypt={row['encrypt_avg']:.3f}s, tally={row['tally_avg']:.4f}s, "
                    f"finalize={row['finalize_avg']:.4f}s, correct={row['all_correct']}")

    return pd.DataFrame(records)


def plot_metrics(df, fig_dir=FIG_DIR):
    """One log-scale bar chart per key size; returns the written file paths."""
    os.makedirs(fig_dir, exist_ok=True)
    paths = []
    for bits, grp in df.groupby("key_bits"):
        x, w = np.arange(len(grp)), 0.25
        fig, ax = plt.subplots(figsize=(10, 4))
        ax.set_yscale("log")
        ax.grid(True, axis="y", which="major", linestyle="--", linewidth=0.7, alpha=0.7)
        ax.bar(x - w, grp["encrypt_avg"], width=w, label="Encrypt (all ballots)")
        ax.bar(x, grp["tally_avg"], width=w, label="Homomorphic tally")
        ax.bar(x + w, grp["finalize_avg"], width=w, label="Decrypt + close")
        ax.set_xticks(x)
        ax.set_xticklabels([f"{n} ballots" for n in grp["ballots"]])
        ax.set_xlabel("Election size")
        ax.set_ylabel("Time (s, log scale)")
        ax.set_title(f"{bits}-bit Paillier tally (keygen avg {grp['keygen_avg'].mean():.2f}s)")
        ax.legend(title="Phase", loc="upper left")
        plt.tight_layout()
        path = os.path.join(fig_dir, f"tally_{bits}bit.png")
        fig.savefig(path)
        plt.close(fig)
        paths.append(path)
    return paths


if __name__ == "__main__":
    results = run_metrics()
    for p in plot_metrics(results):
        logger(f"Figure written to {p}")
    # Optionally save results CSV:
    # results.to_csv("metrics_results.csv", index=False)
