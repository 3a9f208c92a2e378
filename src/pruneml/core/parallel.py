"""
Worker pool helpers.

Per-site likelihood tasks and large matrix products are spread over a
:class:`concurrent.futures.ThreadPoolExecutor`. numpy releases the GIL inside
its linear algebra kernels, so threads give real overlap for the dense work.
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Hashable, Iterable, Optional, TypeVar

import numpy as np

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def make_pool(n_threads: int) -> ThreadPoolExecutor:
    """Create a fixed-size pool for one evaluation."""
    return ThreadPoolExecutor(max_workers=n_threads, thread_name_prefix="pruneml")


def map_keyed(
    fn: Callable[[K], V],
    keys: Iterable[K],
    executor: Optional[Executor] = None,
) -> dict[K, V]:
    """
    Run ``fn`` on every key and collect results keyed by their input.

    Blocks until every task has finished. The first exception raised by a
    task is re-raised here after all tasks completed. Results are stored by
    key, so the combined output never depends on completion order.

    Parameters
    ----------
    fn : callable
        Function of one key.
    keys : iterable
        Hashable task keys (e.g. unique sites).
    executor : Executor, optional
        Pool to run on. Runs inline when None.

    Returns
    -------
    dict
        Mapping from key to ``fn(key)`` in input order.
    """
    keys = list(keys)
    if executor is None:
        return {k: fn(k) for k in keys}
    futures = {k: executor.submit(fn, k) for k in keys}
    results = {}
    error = None
    for k, future in futures.items():
        try:
            results[k] = future.result()
        except Exception as e:
            if error is None:
                error = e
    if error is not None:
        raise error
    return results


def matmul(
    a: np.ndarray,
    b: np.ndarray,
    executor: Optional[Executor] = None,
    threshold: int = 10,
    n_chunks: int = 1,
) -> np.ndarray:
    """
    Matrix product, split row-wise over ``executor`` for large matrices.

    Below ``threshold`` rows (or without an executor) the product runs in the
    calling thread; dispatch overhead outweighs the gain for small state
    spaces such as nucleotides.
    """
    if executor is None or a.shape[0] <= threshold or n_chunks < 2:
        return a @ b
    blocks = np.array_split(np.arange(a.shape[0]), min(n_chunks, a.shape[0]))
    futures = [executor.submit(np.matmul, a[rows], b) for rows in blocks]
    return np.vstack([f.result() for f in futures])
