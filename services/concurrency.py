"""
Concurrency helpers for the I/O layer.

- map_with_concurrency_limit: run a function over items N at a time,
  pausing between batches, to bound outstanding database writes
- run_with_timeout: race a blocking call against a timer
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Iterable, List, Optional, TypeVar, Union

from services.database.db import StorageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


def map_with_concurrency_limit(
    func: Callable[[T], R],
    items: Iterable[T],
    batch_size: int = 10,
    pause: float = 0.0,
    on_batch: Optional[Callable[[int, int], None]] = None
) -> List[Union[R, BaseException]]:
    """
    Apply func to every item, at most batch_size at a time.

    Batches run one after another; items inside a batch run concurrently.
    Results come back in input order. An exception raised for one item is
    returned in that item's slot instead of aborting the other items.

    Args:
        func: Function applied to each item
        items: Items to process
        batch_size: Maximum number of concurrent calls
        pause: Seconds to sleep between batches
        on_batch: Callback called after each batch (batch_number, total_batches)
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    items = list(items)
    results: List[Union[R, BaseException]] = []
    total_batches = (len(items) + batch_size - 1) // batch_size

    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for batch_number, start in enumerate(range(0, len(items), batch_size), 1):
            batch = items[start:start + batch_size]
            futures = [executor.submit(func, item) for item in batch]

            for future in futures:
                try:
                    results.append(future.result())
                except Exception as e:
                    results.append(e)

            if on_batch:
                on_batch(batch_number, total_batches)

            if pause and batch_number < total_batches:
                time.sleep(pause)

    return results


def run_with_timeout(func: Callable[..., R], timeout: float, *args: Any, **kwargs: Any) -> R:
    """
    Run func and wait at most timeout seconds for it.

    Raises:
        StorageTimeoutError: when the call does not finish in time.
            The worker thread is left to finish on its own.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        name = getattr(func, '__name__', repr(func))
        logger.error(f"{name} timed out after {timeout}s")
        raise StorageTimeoutError(f"{name} timed out after {timeout}s")
    finally:
        executor.shutdown(wait=False)
