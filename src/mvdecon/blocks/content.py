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

"""Removal of blocks that do not touch any weighted pixel."""

# Standard Library Imports
import logging
from concurrent.futures import Executor
from typing import List, Optional, Tuple

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.blocks.block import Block
from mvdecon.utils import divide_into_portions, executor_num_threads

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def _portion_has_content(values: np.ndarray, start: int, loop_size: int) -> bool:
    return bool(np.any(values[start : start + loop_size] != 0))


def block_contains_content(
    block: Block,
    weight: np.ndarray,
    service: Executor,
    num_portions: Optional[int] = None,
) -> bool:
    """Whether any weight inside the effective region of ``block`` is non-zero.

    The weight is zero-extended outside of its bounds. The scan is split
    into contiguous portions that are tested concurrently on ``service``.

    Parameters
    ----------
    block : Block
        Block to test.
    weight : np.ndarray
        Weight raster of the view.
    service : Executor
        Shared thread pool.
    num_portions : int, optional
        Number of portions. Defaults to four per thread of ``service``.

    Returns
    -------
    bool
        True if the block has content, or if the scan failed.
    """
    slices = []
    for o, s, n in zip(block.effective_offset, block.effective_size, weight.shape):
        lo, hi = max(o, 0), min(o + s, n)
        if hi <= lo:
            return False
        slices.append(slice(lo, hi))

    values = np.asarray(weight[tuple(slices)]).ravel()

    if num_portions is None:
        num_portions = 4 * executor_num_threads(service)

    futures = [
        service.submit(_portion_has_content, values, start, loop_size)
        for start, loop_size in divide_into_portions(values.size, num_portions)
    ]

    try:
        return any(future.result() for future in futures)
    except Exception as e:
        logger.warning(f"Failed to identify if block contains data: {e}")
        return True


def filter_blocks_for_content(
    batches: List[List[Block]],
    weight: np.ndarray,
    service: Executor,
) -> Tuple[int, int]:
    """Remove empty blocks, then empty batches, in place.

    Parameters
    ----------
    batches : list of list of Block
        Non-interfering batches of one view. Mutated in place.
    weight : np.ndarray
        Weight raster of the view.
    service : Executor
        Shared thread pool.

    Returns
    -------
    tuple of int
        Number of removed blocks and number of removed batches.
    """
    removed_blocks = 0
    removed_batches = 0

    for j in range(len(batches) - 1, -1, -1):
        batch = batches[j]

        for i in range(len(batch) - 1, -1, -1):
            if not block_contains_content(batch[i], weight, service):
                del batch[i]
                removed_blocks += 1

        if len(batch) == 0:
            del batches[j]
            removed_batches += 1

    return removed_blocks, removed_batches
