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
from concurrent.futures import Executor
from typing import List, Optional, Sequence

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.blocks import (
    Block,
    divide_into_blocks,
    sort_blocks_by_smallest_footprint,
)
from mvdecon.blocks import content
from mvdecon.config import PSFType
from mvdecon.deconvolution.psf import DeconViewPSF
from mvdecon.errors import DeconvolutionConfigurationError

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_BLOCK_SIZE = (384, 384, 384)


class DeconView:
    """One input view: image, weight, PSF and its block decomposition.

    Parameters
    ----------
    service : Executor
        Shared thread pool, used for the content filter.
    image : array_like
        Observed image of the view, transformed into the output space.
    weight : array_like, optional
        Confidence of every pixel, same shape as ``image``. Defaults to 1
        everywhere.
    kernel : np.ndarray
        Point spread function of the view.
    psf_type : PSFType
        Derivation of the back-projection kernel.
    block_size : sequence of int
        Buffer size of a block.
    min_required_blocks : int
        Desired minimal number of blocks per batch.
    filter_blocks_for_content : bool
        Remove blocks whose weight is zero everywhere.
    title : str, optional
        Name of the view, used for logging only.

    Attributes
    ----------
    num_blocks : int
        Number of blocks before content filtering, -1 if the view could not
        be divided into blocks.
    non_interfering_blocks : list of list of Block or None
        Batches of blocks that can be processed concurrently.
    """

    def __init__(
        self,
        service: Executor,
        image,
        weight=None,
        kernel: np.ndarray = None,
        psf_type: PSFType = PSFType.INDEPENDENT,
        block_size: Sequence[int] = DEFAULT_BLOCK_SIZE,
        min_required_blocks: int = 1,
        filter_blocks_for_content: bool = True,
        title: Optional[str] = None,
    ):
        if kernel is None:
            raise DeconvolutionConfigurationError("A view requires a PSF.")

        # dask inputs are materialized here
        self.image = np.asarray(image, dtype=np.float32)
        if weight is None:
            self.weight = np.ones(self.image.shape, dtype=np.float32)
        else:
            self.weight = np.asarray(weight, dtype=np.float32)

        if self.image.shape != self.weight.shape:
            raise DeconvolutionConfigurationError(
                f"Image {self.image.shape} and weight {self.weight.shape} of a view "
                f"must have the same dimensions."
            )

        self.title = title
        self.psf = DeconViewPSF(kernel, psf_type)
        self.block_size = tuple(int(b) for b in block_size)

        if self.psf.kernel1.ndim != self.image.ndim or len(self.block_size) != self.image.ndim:
            raise DeconvolutionConfigurationError(
                f"Image {self.image.shape}, PSF {self.psf.shape} and block size "
                f"{self.block_size} must have the same dimensionality."
            )

        # two convolutions per update require twice the kernel support
        kernel_size = tuple(2 * k - 1 for k in self.psf.shape)

        blocks = divide_into_blocks(self.image.shape, kernel_size, self.block_size)

        self.non_interfering_blocks: Optional[List[List[Block]]]
        if blocks is None:
            self.num_blocks = -1
            self.non_interfering_blocks = None
            logger.error(f"Could not divide view {self} into blocks.")
            return

        self.num_blocks = len(blocks)
        logger.info(
            f"Number of blocks: {self.num_blocks}, dim={self.block_size}, "
            f"effective size of each block (due to kernel size) "
            f"{blocks[0].effective_size}, nominal size {blocks[0].size}"
        )

        self.non_interfering_blocks = sort_blocks_by_smallest_footprint(
            blocks, self.image.shape, min_required_blocks
        )

        if filter_blocks_for_content:
            removed_blocks, removed_batches = content.filter_blocks_for_content(
                self.non_interfering_blocks, self.weight, service
            )
            if removed_blocks > 0:
                logger.info(
                    f"Removed {removed_blocks} blocks, {removed_batches} entire batches"
                )

    @property
    def shape(self) -> tuple:
        return self.image.shape

    def __str__(self) -> str:
        if self.title is None:
            return super().__str__()
        return self.title
