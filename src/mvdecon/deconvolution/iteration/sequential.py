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
from typing import TYPE_CHECKING

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.blocks import Block
from mvdecon.deconvolution.iteration.base import (
    ComputeBlockThread,
    ComputeBlockThreadFactory,
    IterationStatistics,
)
from mvdecon.deconvolution.methods import compute_final_values, compute_quotient

if TYPE_CHECKING:
    from mvdecon.deconvolution.view import DeconView


class ComputeBlockSeqThreadCPU(ComputeBlockThread):
    """Update of one block for a single view."""

    def __init__(self, block_size, min_value: float, lambda_: float, thread_id: int):
        super().__init__(block_size, min_value, lambda_, thread_id)
        self.tmp1 = np.zeros(self.block_size, dtype=np.float32)
        self.tmp2 = np.zeros(self.block_size, dtype=np.float32)
        self.img_block_tmp = np.zeros(self.block_size, dtype=np.float32)
        self.weight_block_tmp = np.zeros(self.block_size, dtype=np.float32)

    def run_iteration(
        self,
        view: "DeconView",
        block: Block,
        img_block: np.ndarray,
        weight_block: np.ndarray,
        max_intensity_view: float,
    ) -> IterationStatistics:
        """Run one Richardson-Lucy step on ``psi_block_tmp``.

        Parameters
        ----------
        view : DeconView
            The view providing the kernels.
        block : Block
            The block being processed.
        img_block : np.ndarray
            Observed image in the effective region of the block.
        weight_block : np.ndarray
            Weights in the effective region of the block.
        max_intensity_view : float
            Maximal intensity of the view, normalizes the regularization.

        Returns
        -------
        IterationStatistics
            Changes within the nominal region of the block.
        """
        psf = view.psf

        # psi >> tmp1
        psf.convolution1.convolve(self.psi_block_tmp, out=self.tmp1, mode="reflect")

        # tmp1, img >> tmp1
        compute_quotient(self.tmp1, img_block)

        # the quotient is 1 outside of the block
        # tmp1 >> tmp2
        psf.convolution2.convolve(self.tmp1, out=self.tmp2, mode="constant", cval=1.0)

        # psi, weight, tmp2 >> psi
        sum_change, max_change = compute_final_values(
            self.psi_block_tmp,
            self.tmp2,
            weight_block,
            self.lambda_,
            self.min_value,
            max_intensity_view,
            region=block.local_slices(),
        )
        return IterationStatistics(sum_change, max_change)


class ComputeBlockSeqThreadCPUFactory(ComputeBlockThreadFactory[ComputeBlockSeqThreadCPU]):
    def create(self, thread_id: int) -> ComputeBlockSeqThreadCPU:
        return ComputeBlockSeqThreadCPU(
            self.block_size, self.min_value, self.lambda_, thread_id
        )
