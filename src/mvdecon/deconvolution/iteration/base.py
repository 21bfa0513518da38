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

"""Block compute strategies.

A compute-block instance is owned by exactly one worker and holds the
scratch buffers of that worker for the whole run. Two strategies exist:
views are processed one after another (sequential) or jointly per block
(simultaneous).
"""

# Standard Library Imports
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.blocks import Block


@dataclass
class IterationStatistics:
    """Sum and maximum of the absolute per-pixel changes."""

    sum_change: float = 0.0
    max_change: float = 0.0

    def add(self, other: "IterationStatistics") -> "IterationStatistics":
        """Accumulate ``other`` into this instance."""
        self.sum_change += other.sum_change
        self.max_change = max(self.max_change, other.max_change)
        return self

    @classmethod
    def aggregate(cls, stats: Sequence["IterationStatistics"]) -> "IterationStatistics":
        total = cls()
        for s in stats:
            total.add(s)
        return total


class ComputeBlockThread(ABC):
    """Scratch buffers and parameters shared by both compute strategies.

    Parameters
    ----------
    block_size : sequence of int
        Shape of the block buffers.
    min_value : float
        Lowest value allowed in the deconvolved image.
    lambda_ : float
        Tikhonov parameter.
    thread_id : int
        Index of the worker owning this instance.
    """

    def __init__(self, block_size: Sequence[int], min_value: float, lambda_: float, thread_id: int):
        self.block_size = tuple(int(b) for b in block_size)
        self.min_value = min_value
        self.lambda_ = lambda_
        self.thread_id = thread_id
        self.psi_block_tmp = np.zeros(self.block_size, dtype=np.float32)

    def crop_view(self, block: Block, source: np.ndarray, out: np.ndarray) -> np.ndarray:
        """Return the effective region of ``source`` for ``block``.

        A view of ``source`` if the region lies inside of it, otherwise
        ``out`` filled with the zero-extended crop.
        """
        if block.is_inside(source.shape):
            return source[block.effective_slices()]
        return block.crop_zero(source, out=out)

    @abstractmethod
    def run_iteration(self, *args, **kwargs) -> IterationStatistics:
        """Update ``psi_block_tmp`` in place and return its change statistics."""


C = TypeVar("C", bound=ComputeBlockThread)


class ComputeBlockThreadFactory(ABC, Generic[C]):
    """Creates one compute-block instance per parallel block worker."""

    def __init__(
        self,
        block_size: Sequence[int],
        min_value: float,
        lambda_: float,
        num_parallel_blocks: int = 1,
    ):
        self.block_size = tuple(int(b) for b in block_size)
        self.min_value = min_value
        self.lambda_ = lambda_
        self._num_parallel_blocks = max(1, int(num_parallel_blocks))

    @abstractmethod
    def create(self, thread_id: int) -> C:
        ...

    def num_parallel_blocks(self) -> int:
        return self._num_parallel_blocks

