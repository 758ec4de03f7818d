# chatrelay/services/identity.py

from __future__ import annotations

import itertools
import time
import uuid

# Process-wide sequence, next() on itertools.count is atomic under the GIL
_sequence = itertools.count(1)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id() -> str:
    """
    Produce an opaque identifier unique for the lifetime of the process.

    Format: ``id-<epoch ms>-<sequence>-<random>``. The sequence alone rules
    out collisions between calls in the same millisecond; the random suffix
    keeps IDs from different process runs apart.
    """
    return f"id-{now_ms()}-{next(_sequence)}-{uuid.uuid4().hex[:8]}"
