#!/usr/bin/env python
"""Fail-fast import verification for critical modules."""
from __future__ import annotations

import importlib
import sys

MODULES = [
    "batch_cursor",
    "batch_cursor.cli",
    "batch_cursor.checkpoint",
    "batch_cursor.checkpoint_store_factory",
    "batch_cursor.checkpoint_store_object",
    "batch_cursor.pipeline",
    "batch_cursor.reader",
    "batch_cursor.sqlite_source",
]


def main() -> int:
    for module in MODULES:
        try:
            importlib.import_module(module)
        except Exception as exc:  # pragma: no cover - intentional fail fast
            print(f"[verify_repo_integrity] Failed to import {module}: {exc}", file=sys.stderr)
            return 1
    print("[verify_repo_integrity] All modules imported successfully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
