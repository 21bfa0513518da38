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

"""Divide a volume into fixed-size, kernel-expanded blocks."""

# Standard Library Imports
import itertools
import logging
import math
from typing import List, Optional, Sequence, Tuple

# Third Party Imports

# Local Imports
from mvdecon.blocks.block import Block

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def block_step(block_size: Sequence[int], kernel_size: Sequence[int]) -> Tuple[int, ...]:
    """Size of the nominal region of a block for a given kernel support.

    Parameters
    ----------
    block_size : sequence of int
        Size of the buffer holding one block, including the kernel support.
    kernel_size : sequence of int
        Support of the combined kernel, i.e. ``2 * psf_size - 1`` when two
        successive convolutions are applied.

    Returns
    -------
    tuple of int
        Nominal size per dimension. Entries <= 0 mean the block cannot hold
        the kernel.
    """
    return tuple(int(b) - int(k) + 1 for b, k in zip(block_size, kernel_size))


def divide_into_blocks(
    img_size: Sequence[int],
    kernel_size: Sequence[int],
    block_size: Sequence[int],
) -> Optional[List[Block]]:
    """Cover an image with blocks whose buffers all have ``block_size``.

    The nominal regions tile the image without gaps or double coverage. Each
    block is expanded by half the kernel support on every side, so its
    buffer has exactly ``block_size``. Blocks at the upper image border have
    a smaller nominal region but the same buffer size.

    Parameters
    ----------
    img_size : sequence of int
        Shape of the image.
    kernel_size : sequence of int
        Support of the combined kernel per dimension.
    block_size : sequence of int
        Buffer size per dimension.

    Returns
    -------
    list of Block or None
        Blocks ordered by grid position (last axis fastest), or None if the
        block size is too small for the kernel.
    """
    img_size = tuple(int(s) for s in img_size)
    kernel_size = tuple(int(k) for k in kernel_size)
    block_size = tuple(int(b) for b in block_size)

    if not (len(img_size) == len(kernel_size) == len(block_size)):
        logger.error(
            f"Dimensionality mismatch: image {img_size}, kernel {kernel_size}, "
            f"block {block_size}"
        )
        return None

    step = block_step(block_size, kernel_size)
    if min(step) <= 0:
        logger.error(
            f"Block size {block_size} is too small for kernel support "
            f"{kernel_size}; it must be at least the kernel support per dimension."
        )
        return None

    if min(img_size) <= 0:
        logger.error(f"Cannot divide an empty image of size {img_size} into blocks.")
        return None

    grid = tuple(math.ceil(s / st) for s, st in zip(img_size, step))
    half_kernel = tuple(k // 2 for k in kernel_size)

    blocks = []
    for position in itertools.product(*(range(g) for g in grid)):
        offset = tuple(p * st for p, st in zip(position, step))
        size = tuple(min(st, s - o) for st, s, o in zip(step, img_size, offset))
        effective_offset = tuple(o - h for o, h in zip(offset, half_kernel))
        blocks.append(
            Block(
                offset=offset,
                size=size,
                effective_offset=effective_offset,
                effective_size=block_size,
                grid_position=position,
            )
        )

    logger.debug(f"Divided image {img_size} into {grid} blocks with step {step}.")
    return blocks
