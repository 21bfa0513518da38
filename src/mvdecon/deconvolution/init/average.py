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
from typing import TYPE_CHECKING, Sequence, Tuple

# Third Party Imports
import numpy as np

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

SEED = 34556


class PsiInitAvgPrecise(PsiInit):
    """Exact average over all pixels covered by at least one view.

    Parameters
    ----------
    set_img_to_avg : bool
        Fill the deconvolved image with the average.
    replace_nan_average : bool
        See :class:`PsiInit`.
    """

    def __init__(self, set_img_to_avg: bool = True, replace_nan_average: bool = True):
        super().__init__(replace_nan_average)
        self.set_img_to_avg = set_img_to_avg

    def run_initialization(
        self,
        psi: np.ndarray,
        views: Sequence["DeconView"],
        service: Executor,
    ) -> bool:
        images = [view.image for view in views]

        portions = divide_into_portions(psi.shape[0], 4 * executor_num_threads(service))
        futures = [
            service.submit(intensity_statistics, images, start, loop_size)
            for start, loop_size in portions
        ]

        try:
            total, count, max_values = collect_statistics(futures)
        except Exception as e:
            logger.error(f"Failed to compute the average intensity: {e}")
            return False

        self.max = max_values
        avg = total / count if count > 0 else float("nan")
        if not self._accept_average(avg):
            return False

        if self.set_img_to_avg:
            logger.info(f"Setting image to average intensity: {self.avg}")
            psi[...] = self.avg
        return True


def central_hyperslices(image: np.ndarray):
    """The central slice of ``image`` orthogonal to every axis."""
    for d in range(image.ndim):
        yield np.take(image, image.shape[d] // 2, axis=d)


def approximate_statistics(image: np.ndarray, view_index: int, num_samples: int) -> Tuple[float, float]:
    """Mean and maximum of a view estimated from its central hyperslices.

    The maximum is taken over the full hyperslices, the mean over
    ``num_samples`` pixels drawn from them with a seed that depends on the
    view only.

    Returns
    -------
    tuple of float
        Approximate mean and maximum.
    """
    values = np.concatenate([s.ravel() for s in central_hyperslices(image)])
    if values.size == 0:
        return float("nan"), 0.0

    rng = np.random.default_rng(SEED + view_index)
    samples = values[rng.integers(0, values.size, size=num_samples)]
    return float(np.mean(samples, dtype=np.float64)), float(values.max())


class PsiInitAvgApprox(PsiInit):
    """Average estimated from a subsample of every view.

    Parameters
    ----------
    num_samples : int
        Number of pixels sampled per view.
    set_img_to_avg : bool
        Fill the deconvolved image with the average.
    replace_nan_average : bool
        See :class:`PsiInit`.
    """

    def __init__(
        self,
        num_samples: int = 1000,
        set_img_to_avg: bool = True,
        replace_nan_average: bool = True,
    ):
        super().__init__(replace_nan_average)
        self.num_samples = num_samples
        self.set_img_to_avg = set_img_to_avg

    def run_initialization(
        self,
        psi: np.ndarray,
        views: Sequence["DeconView"],
        service: Executor,
    ) -> bool:
        futures = [
            service.submit(approximate_statistics, view.image, i, self.num_samples)
            for i, view in enumerate(views)
        ]

        try:
            results = [future.result() for future in futures]
        except Exception as e:
            logger.error(f"Failed to approximate the average intensity: {e}")
            return False

        self.max = np.array([m for _, m in results], dtype=np.float32)
        avg = float(np.mean([a for a, _ in results]))
        if not self._accept_average(avg):
            return False

        if self.set_img_to_avg:
            logger.info(f"Setting image to average intensity: {self.avg}")
            psi[...] = self.avg
        return True
