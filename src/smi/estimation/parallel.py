"""
Shared-nothing fan-out of per-cell work over a thread pool.
"""
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Tuple, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHUNKS_PER_WORKER = 4


def resolve_workers(n_workers: Optional[int] = None) -> int:
    if n_workers is None:
        return os.cpu_count() or 1
    return max(1, int(n_workers))


def map_cells(
    func: Callable[[np.ndarray], T],
    n_cells: int,
    n_workers: Optional[int] = None,
) -> List[Tuple[np.ndarray, T]]:
    """Run ``func`` on disjoint chunks of packed cell indices.

    Returns (cells, result) pairs in chunk order; the caller writes each
    result into the slots of its own chunk.
    """
    workers = resolve_workers(n_workers)
    n_chunks = max(1, min(n_cells, workers * CHUNKS_PER_WORKER))
    chunks = [c for c in np.array_split(np.arange(n_cells), n_chunks) if c.size]

    if workers == 1 or len(chunks) == 1:
        return [(cells, func(cells)) for cells in chunks]

    results = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_chunk = {
            executor.submit(func, cells): i for i, cells in enumerate(chunks)
        }
        for future in as_completed(future_to_chunk):
            i = future_to_chunk[future]
            # propagate worker exceptions unchanged
            results[i] = future.result()

    logger.debug("Processed %d cells in %d chunks on %d workers", n_cells, len(chunks), workers)
    return [(chunks[i], results[i]) for i in range(len(chunks))]
