#!/usr/bin/env python3
"""
bulkupload Pipeline Benchmark

Generates a synthetic directory tree and uploads it into the in-memory object
store at several concurrency levels, then prints files/second and MiB/s for
each run.

Usage:
    python bench.py
    python bench.py --files 2000 --size 64k --concurrency 1,8,24,64
    python bench.py --buf 1m --json
"""

import argparse
import json
import os
import shutil
import subprocess
import sys
import tempfile
import time

from bulkupload.config import Destination
from bulkupload.logging_config import configure_logging
from bulkupload.pipeline import UploadPipeline
from bulkupload.sizes import MIB, format_bytes, size_arg
from bulkupload.storage.memory import MemoryObjectStore
from bulkupload.worklist import WorkList


def get_rss_kb(pid):
    """Get RSS in KB for a given PID."""
    try:
        out = subprocess.check_output(["ps", "-o", "rss=", "-p", str(pid)]).decode().strip()
        return int(out)
    except (OSError, subprocess.CalledProcessError, ValueError):
        return 0


def make_tree(root, files, size, fanout=50):
    """Write ``files`` random files of ``size`` bytes, ``fanout`` per directory."""
    for i in range(files):
        sub = os.path.join(root, f"d{i // fanout:04d}")
        os.makedirs(sub, exist_ok=True)
        with open(os.path.join(sub, f"f{i:06d}.bin"), "wb") as fh:
            fh.write(os.urandom(size))


def bench_pipeline(root, concurrency, buffer_size, gc_interval):
    """Upload the tree once. Returns a result dict."""
    store = MemoryObjectStore()
    dest = Destination(scheme=store.scheme, bucket="bench", prefix=f"n{concurrency}")
    pipeline = UploadPipeline(
        store,
        dest,
        concurrency=concurrency,
        buffer_size=buffer_size,
        chunk_size=0,
        gc_interval=gc_interval,
    )
    rss_before = get_rss_kb(os.getpid())
    with WorkList(directory=root, prefix=dest.prefix) as work:
        t0 = time.monotonic()
        result = pipeline.run(work)
        elapsed = time.monotonic() - t0
    rss_after = get_rss_kb(os.getpid())

    return {
        "concurrency": concurrency,
        "files": result.uploaded,
        "bytes": result.bytes,
        "seconds": round(elapsed, 3),
        "files_per_sec": round(result.uploaded / elapsed, 1) if elapsed > 0 else 0,
        "mib_per_sec": round(result.bytes / elapsed / MIB, 1) if elapsed > 0 else 0,
        "buffers": pipeline.pool.allocated,
        "rss_delta_kb": max(0, rss_after - rss_before),
    }


def print_table(results, files, size):
    print(f"\n{'=' * 70}")
    print(f"  bulkupload pipeline: {files} files x {format_bytes(size)}")
    print(f"{'=' * 70}\n")
    print(f"{'Workers':>8} {'Seconds':>10} {'Files/s':>10} {'MiB/s':>10} {'Buffers':>8} {'RSS +MB':>8}")
    print("-" * 58)
    for r in results:
        print(
            f"{r['concurrency']:>8} {r['seconds']:>10.3f} {r['files_per_sec']:>10.1f} "
            f"{r['mib_per_sec']:>10.1f} {r['buffers']:>8} {r['rss_delta_kb'] // 1024:>8}"
        )


def main():
    parser = argparse.ArgumentParser(description="bulkupload pipeline benchmark")
    parser.add_argument("--files", type=int, default=1000, help="Number of files (default: 1000)")
    parser.add_argument("--size", type=size_arg, default=size_arg("32k"), help="Size of each file (default: 32k)")
    parser.add_argument(
        "--concurrency",
        default="1,4,24,64",
        help="Comma-separated concurrency levels (default: 1,4,24,64)",
    )
    parser.add_argument("--buf", type=size_arg, default=size_arg("512k"), help="Copy buffer size (default: 512k)")
    parser.add_argument("--gc", type=int, default=0, help="Collect garbage every N uploads (default: 0)")
    parser.add_argument("--json", action="store_true", help="Output raw JSON instead of a table")
    args = parser.parse_args()

    try:
        levels = [int(n) for n in args.concurrency.split(",") if n]
    except ValueError:
        parser.error(f"invalid --concurrency: {args.concurrency}")

    configure_logging(level="WARNING")

    root = tempfile.mkdtemp(prefix="bulkupload-bench-")
    try:
        print(f"Generating {args.files} files of {format_bytes(args.size)} in {root}...", file=sys.stderr)
        make_tree(root, args.files, args.size)
        results = [bench_pipeline(root, n, args.buf, args.gc) for n in levels]
    finally:
        shutil.rmtree(root, ignore_errors=True)

    if args.json:
        print(json.dumps({"files": args.files, "size": args.size, "results": results}, indent=2))
        return

    print_table(results, args.files, args.size)


if __name__ == "__main__":
    main()
