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
from typing import TYPE_CHECKING, Sequence

# Third Party Imports
import numpy as np
from scipy import ndimage

# Local Imports
from mvdecon.deconvolution.init.base import (
    PsiInit,
    collect_statistics,
    intensity_statistics,
)
from mvdecon.utils import divide_into_portions, executor_num_threads

if TYPE_CHECKING:
    from mvdecon.deconvolution.view import DeconView

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class PsiInitBlurredFused(PsiInit):
    """Weighted fusion of all views, blurred by a Gaussian.

    Parameters
    ----------
    sigma : float
        Standard deviation of the Gaussian in pixels.
    replace_nan_average : bool
        See :class:`PsiInit`.
    """

    def __init__(self, sigma: float = 5.0, replace_nan_average: bool = True):
        super().__init__(replace_nan_average)
        self.sigma = sigma

    def run_initialization(
        self,
        psi: np.ndarray,
        views: Sequence["DeconView"],
        service: Executor,
    ) -> bool:
        images = [view.image for view in views]
        weights = [view.weight for view in views]

        logger.info("Fusing estimate of deconvolved image ...")
        portions = divide_into_portions(psi.shape[0], 4 * executor_num_threads(service))
        futures = [
            service.submit(intensity_statistics, images, start, loop_size, weights, psi)
            for start, loop_size in portions
        ]

        try:
            total, count, max_values = collect_statistics(futures)
        except Exception as e:
            logger.error(f"Failed to fuse initial iteration: {e}")
            return False

        if count == 0:
            logger.error(
                "None of the views covers the deconvolved area, did you set the "
                "bounding box right? Exiting."
            )
            return False

        self.max = max_values
        if not self._accept_average(total / count):
            return False

        logger.info(f"Blurring input image with sigma = {self.sigma} to use as input")
        psi[...] = ndimage.gaussian_filter(psi, sigma=self.sigma, mode="mirror")
        return True
