# core/utils/batching.py
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar('K')
V = TypeVar('V')


def chunked(items: List[K], size: int) -> Iterator[List[K]]:
    """Split a list into consecutive chunks of at most ``size`` items."""
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start:start + size]


def iter_batches(items: List[K], worker: Callable[[K], V], batch_size: int
                 ) -> Iterator[Tuple[int, Dict[K, Optional[V]]]]:
    """
    Run ``worker`` over ``items`` in fixed-size concurrent batches.

    Each batch runs to completion before the next one starts. After every
    batch this yields ``(completed, batch_results)``; a caller that stops
    iterating stops further batches from being issued. A worker that raises
    contributes ``None`` for its item.

    Args:
        items: Items to process, in order
        worker: Function called once per item
        batch_size: Number of concurrent calls per batch

    Yields:
        Tuple of items completed so far and the results of the latest batch
    """
    completed = 0
    for batch in chunked(items, batch_size):
        results: Dict[K, Optional[V]] = {}
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = [(item, executor.submit(worker, item)) for item in batch]
            for item, future in futures:
                try:
                    results[item] = future.result()
                except Exception as e:
                    logger.warning(f"Batch item {item!r} failed: {e}")
                    results[item] = None
        completed += len(batch)
        yield completed, results
