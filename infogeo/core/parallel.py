"""
Order-preserving worker pool.

Per-unit work is independent: each task reads immutable inputs and
returns its own result. Results come back in input order, so output is
identical whatever order the workers finish in.
"""

import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any, Callable, List, Sequence


def resolve_workers(n_workers: int) -> int:
    """-1 = all CPUs. Anything below 1 otherwise is an error."""
    if n_workers == -1:
        return os.cpu_count() or 1
    if n_workers < 1:
        raise ValueError(f"n_workers must be >= 1 or -1, got {n_workers}")
    return n_workers


def chunked(items: Sequence[Any], n_chunks: int) -> List[List[Any]]:
    """Split into at most n_chunks contiguous, non-empty chunks."""
    items = list(items)
    if not items:
        return []
    n_chunks = max(1, min(n_chunks, len(items)))
    size, extra = divmod(len(items), n_chunks)
    chunks = []
    start = 0
    for i in range(n_chunks):
        stop = start + size + (1 if i < extra else 0)
        chunks.append(items[start:stop])
        start = stop
    return chunks


def ordered_map(
    fn: Callable[[Any], Any],
    items: Sequence[Any],
    n_workers: int = 1,
) -> List[Any]:
    """
    Apply fn to every item, returning results in input order.

    n_workers == 1 runs in-process. Otherwise fn and items must be
    picklable (module-level function, plain data).
    """
    items = list(items)
    workers = resolve_workers(n_workers)

    if workers == 1 or len(items) < 2:
        return [fn(item) for item in items]

    results: List[Any] = [None] * len(items)
    with ProcessPoolExecutor(max_workers=min(workers, len(items))) as executor:
        futures = {executor.submit(fn, item): i for i, item in enumerate(items)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()

    return results
