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

"""Group blocks into batches whose buffers never overlap."""

# Standard Library Imports
import logging
import math
from typing import Dict, List, Sequence, Tuple

# Third Party Imports

# Local Imports
from mvdecon.blocks.block import Block

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def batch_strides(blocks: Sequence[Block]) -> Tuple[int, ...]:
    """Grid distance after which two blocks no longer overlap, per dimension.

    Blocks ``s`` grid positions apart are ``s * step`` pixels apart, which is
    non-overlapping once it reaches the buffer size.
    """
    first = min(blocks, key=lambda b: b.grid_position)
    grid = tuple(max(b.grid_position[d] for b in blocks) + 1 for d in range(first.num_dimensions))

    strides = []
    for d in range(first.num_dimensions):
        if grid[d] == 1:
            strides.append(1)
        else:
            step = first.size[d]
            strides.append(min(grid[d], math.ceil(first.effective_size[d] / step)))
    return tuple(strides)


def sort_blocks_by_smallest_footprint(
    blocks: Sequence[Block],
    img_size: Sequence[int],
    min_required_blocks: int = 1,
) -> List[List[Block]]:
    """Distribute blocks over the smallest possible number of batches.

    Blocks are colored by their grid position modulo the batch stride of
    every dimension. Two blocks of the same color differ by at least one
    full stride in some dimension, so their buffers cannot intersect and
    all blocks of a batch may be processed concurrently.

    Parameters
    ----------
    blocks : sequence of Block
        Output of :func:`mvdecon.blocks.generator.divide_into_blocks`.
    img_size : sequence of int
        Shape of the image, used for logging only.
    min_required_blocks : int
        Desired minimal number of blocks per batch. Batches can only be
        enlarged by letting buffers overlap, so smaller batches are kept and
        reported.

    Returns
    -------
    list of list of Block
        Batches in grid order of their first block.
    """
    if len(blocks) == 0:
        return []

    strides = batch_strides(blocks)

    batches: Dict[Tuple[int, ...], List[Block]] = {}
    for block in blocks:
        color = tuple(p % s for p, s in zip(block.grid_position, strides))
        batches.setdefault(color, []).append(block)

    sorted_batches = [batches[color] for color in sorted(batches)]

    smallest = min(len(batch) for batch in sorted_batches)
    if smallest < min_required_blocks:
        logger.warning(
            f"Smallest batch holds {smallest} block(s), fewer than the "
            f"{min_required_blocks} requested; increase the image size or "
            f"decrease the block size for more parallelism."
        )

    logger.info(
        f"Sorted {len(blocks)} blocks of image {tuple(img_size)} into "
        f"{len(sorted_batches)} non-interfering batches (strides {strides})."
    )
    return sorted_batches
