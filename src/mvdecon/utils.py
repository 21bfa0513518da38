#  Copyright (c) 2021-2025  The University of Texas Southwestern Medical Center.
#  All rights reserved.
#  Redistribution and use in source and binary forms, with or without
#  modification, are permitted for academic and research use only (subject to the
#  limitations in the disclaimer below) provided that the following conditions are met:
#       * Redistributions of source code must retain the above copyright notice,
#       this list of conditions and the following disclaimer.
#       * Redistributions in binary form must reproduce the above copyright
#       notice, this list of conditions and the following disclaimer in the
#       documentation and/or other materials provided with the distribution.
#       * Neither the name of the copyright holders nor the names of its
#       contributors may be used to endorse or promote products derived from this
#       software without specific prior written permission.
#  NO EXPRESS OR IMPLIED LICENSES TO ANY PARTY'S PATENT RIGHTS ARE GRANTED BY
#  THIS LICENSE. THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND
#  CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
#  LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A
#  PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#  CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL,
#  EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#  PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR
#  BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER
#  IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
#  ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
#  POSSIBILITY OF SUCH DAMAGE.

# Standard Library Imports
import logging
import os
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import List, Optional, Tuple

# Third Party Imports

# Local Imports

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def default_num_threads() -> int:
    """Return the number of threads used when none is configured."""
    return max(1, os.cpu_count() or 1)


class ExecutorService(ThreadPoolExecutor):
    """Thread pool that remembers its size.

    Parameters
    ----------
    num_threads : int
        Number of worker threads.
    """

    def __init__(self, num_threads: int):
        super().__init__(max_workers=num_threads, thread_name_prefix="mvdecon")
        self.num_threads = num_threads


def create_executor_service(num_threads: Optional[int] = None) -> ExecutorService:
    """Create the thread pool shared by all deconvolution tasks.

    Parameters
    ----------
    num_threads : int, optional
        Number of worker threads. Defaults to :func:`default_num_threads`.

    Returns
    -------
    ExecutorService
        A bounded pool, sized once at startup.
    """
    num_threads = num_threads or default_num_threads()
    logger.info(f"Creating thread pool with {num_threads} thread(s).")
    return ExecutorService(num_threads)


def executor_num_threads(service: Executor) -> int:
    """Return the pool size of an executor, or the global default."""
    if isinstance(service, ExecutorService):
        return service.num_threads
    return default_num_threads()


def divide_into_portions(size: int, num_portions: Optional[int] = None) -> List[Tuple[int, int]]:
    """Split ``size`` consecutive elements into contiguous portions.

    The number of portions depends only on the number of threads, never on
    the amount of data, so that callers can issue one task per portion.

    Parameters
    ----------
    size : int
        Total number of elements.
    num_portions : int, optional
        Desired number of portions. Defaults to four per available thread.

    Returns
    -------
    list of tuple of int
        ``(start, loop_size)`` for every non-empty portion.
    """
    if size <= 0:
        return []

    if num_portions is None:
        num_portions = 4 * default_num_threads()

    num_portions = max(1, min(int(num_portions), int(size)))
    portion_size = size // num_portions
    remainder = size % num_portions

    portions = []
    start = 0
    for i in range(num_portions):
        # the first `remainder` portions carry one extra element
        loop_size = portion_size + (1 if i < remainder else 0)
        portions.append((start, loop_size))
        start += loop_size

    return portions
