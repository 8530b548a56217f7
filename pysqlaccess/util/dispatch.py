import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, TypeVar

R = TypeVar("R")


async def run_in_thread(
    fn: Callable[[], R], cancel: Optional[Callable[[], None]] = None
) -> R:
    """
    Runs a blocking function in a dedicated worker thread, and waits for its result.

    If the awaiting task is cancelled, the callable `cancel` is invoked so that the blocking call can return early,
    and the cancellation is then propagated to the caller without waiting for the worker thread to finish.

    :param fn: A regular function taking no arguments.
    :param cancel: Interrupts the blocking call in progress.
    """

    loop = asyncio.get_running_loop()
    pool = ThreadPoolExecutor(max_workers=1)
    wait = True
    try:
        return await loop.run_in_executor(pool, fn)
    except asyncio.CancelledError:
        if cancel is not None:
            cancel()
        # the worker thread exits on its own once the blocking call returns
        wait = False
        raise
    finally:
        pool.shutdown(wait=wait)
