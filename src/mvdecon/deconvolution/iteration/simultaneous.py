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
from typing import TYPE_CHECKING, List, Sequence

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.blocks import Block
from mvdecon.deconvolution.iteration.base import (
    ComputeBlockThread,
    ComputeBlockThreadFactory,
    IterationStatistics,
)
from mvdecon.deconvolution.methods import compute_final_values_mul, compute_quotient

if TYPE_CHECKING:
    from mvdecon.deconvolution.view import DeconView


class ComputeBlockMulThreadCPU(ComputeBlockThread):
    """Update of one block combining the corrections of all views."""

    def __init__(
        self,
        block_size,
        min_value: float,
        lambda_: float,
        thread_id: int,
        num_views: int,
    ):
        super().__init__(block_size, min_value, lambda_, thread_id)
        self.tmp1 = np.zeros(self.block_size, dtype=np.float32)
        self.tmp2: List[np.ndarray] = [
            np.zeros(self.block_size, dtype=np.float32) for _ in range(num_views)
        ]
        self.img_block_tmp: List[np.ndarray] = [
            np.zeros(self.block_size, dtype=np.float32) for _ in range(num_views)
        ]
        self.weight_block_tmp: List[np.ndarray] = [
            np.zeros(self.block_size, dtype=np.float32) for _ in range(num_views)
        ]

    def run_iteration(
        self,
        views: Sequence["DeconView"],
        block: Block,
        img_blocks: Sequence[np.ndarray],
        weight_blocks: Sequence[np.ndarray],
        max_intensity: float,
    ) -> IterationStatistics:
        """Compute the correction of every view and apply their geometric mean.

        Parameters
        ----------
        views : sequence of DeconView
            All views, in the order of ``img_blocks`` and ``weight_blocks``.
        block : Block
            The block being processed; identical for all views.
        img_blocks : sequence of np.ndarray
            Observed images in the effective region of the block.
        weight_blocks : sequence of np.ndarray
            Weights in the effective region of the block.
        max_intensity : float
            Average of the maximal intensities of all views.

        Returns
        -------
        IterationStatistics
            Changes within the nominal region of the block.
        """
        for view, img_block, tmp2 in zip(views, img_blocks, self.tmp2):
            psf = view.psf
            psf.convolution1.convolve(self.psi_block_tmp, out=self.tmp1, mode="reflect")
            compute_quotient(self.tmp1, img_block)
            psf.convolution2.convolve(self.tmp1, out=tmp2, mode="constant", cval=1.0)

        sum_change, max_change = compute_final_values_mul(
            self.psi_block_tmp,
            self.tmp2,
            weight_blocks,
            self.lambda_,
            self.min_value,
            max_intensity,
            region=block.local_slices(),
        )
        return IterationStatistics(sum_change, max_change)


class ComputeBlockMulThreadCPUFactory(ComputeBlockThreadFactory[ComputeBlockMulThreadCPU]):
    def __init__(
        self,
        block_size,
        min_value: float,
        lambda_: float,
        num_views: int,
        num_parallel_blocks: int = 1,
    ):
        super().__init__(block_size, min_value, lambda_, num_parallel_blocks)
        self.num_views = num_views

    def create(self, thread_id: int) -> ComputeBlockMulThreadCPU:
        return ComputeBlockMulThreadCPU(
            self.block_size, self.min_value, self.lambda_, thread_id, self.num_views
        )
