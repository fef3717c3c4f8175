#!/usr/bin/env python3
"""Per-shard status files.

Every presubmit shard writes status_<test>.json at the end of its run; the
master job collects them, one shard per directory, under
<workspace>/test_results/<build_number>/L=<label>,TEST=<test>/.
"""

import json
import logging
import os
from pathlib import Path

from presubmitctl.models import TestRunResult

logger = logging.getLogger(__name__)


def status_file_name(test_name: str) -> str:
    return f"status_{test_name.replace('-', '_')}.json"


def find_status_files(results_dir: str) -> list[str]:
    """Return all status_*.json paths under results_dir, sorted.

    The sort fixes the shard order, and with it the order of every section
    of the rendered report.
    """
    found = []
    for dirpath, _, filenames in os.walk(results_dir):
        for name in filenames:
            if name.startswith("status_") and name.endswith(".json"):
                found.append(os.path.join(dirpath, name))
    return sorted(found)


def read_status_file(path: str) -> TestRunResult:
    """Load one status file. Raises OSError or ValueError."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    try:
        return TestRunResult.from_dict(data)
    except (KeyError, TypeError) as e:
        raise ValueError(f"invalid status record: {e!r}") from e


def load_results(results_dir: str) -> list[TestRunResult]:
    """Load every shard's status, in sorted shard order.

    Unreadable or malformed status files are logged and skipped so the
    other shards still get reported.
    """
    results = []
    for path in find_status_files(results_dir):
        try:
            results.append(read_status_file(path))
        except (OSError, ValueError) as e:
            logger.warning("Skipping status file %s: %s", path, e)
    logger.info("Loaded %d shard status file(s) from %s", len(results), results_dir)
    return results


def write_status_file(directory: str, result: TestRunResult) -> str:
    """Write result as status_<test>.json in directory. Returns the path."""
    path = Path(directory) / status_file_name(result.test_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    logger.info("Wrote %s", path)
    return str(path)
