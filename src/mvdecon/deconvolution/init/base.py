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
import math
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

# Third Party Imports
import numpy as np

# Local Imports

if TYPE_CHECKING:
    from mvdecon.deconvolution.view import DeconView

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class PsiInit(ABC):
    """Strategy producing the first estimate of the deconvolved image.

    After a successful :meth:`run_initialization`, ``avg`` holds the mean
    intensity of the area covered by at least one view and ``max`` the peak
    intensity of every view, in the order of the views.

    Parameters
    ----------
    replace_nan_average : bool
        Replace a NaN average by 1.0 with a warning. If False, a NaN average
        makes the initialization fail.
    """

    def __init__(self, replace_nan_average: bool = True):
        self.replace_nan_average = replace_nan_average
        self.avg: float = -1.0
        self.max: Optional[np.ndarray] = None

    @abstractmethod
    def run_initialization(
        self,
        psi: np.ndarray,
        views: Sequence["DeconView"],
        service: Executor,
    ) -> bool:
        """Fill ``psi`` in place and compute ``avg`` and ``max``.

        Returns
        -------
        bool
            False if the initialization failed.
        """

    def get_avg(self) -> float:
        return self.avg

    def get_max(self) -> Optional[np.ndarray]:
        return self.max

    def _accept_average(self, avg: float) -> bool:
        if math.isnan(avg):
            if not self.replace_nan_average:
                logger.error("Computing average FAILED, is NaN.")
                return False
            avg = 1.0
            logger.warning(f"Computing average FAILED, is NaN, setting it to: {avg}")

        self.avg = avg
        logger.info(f"Average intensity in overlapping area: {avg}")
        return True


def intensity_statistics(
    images: Sequence[np.ndarray],
    start: int,
    loop_size: int,
    weights: Optional[Sequence[np.ndarray]] = None,
    psi: Optional[np.ndarray] = None,
) -> Tuple[float, int, np.ndarray]:
    """Statistics of a slab ``[start, start + loop_size)`` along axis 0.

    Only pixels with intensity > 0 contribute. For every pixel covered by at
    least one view, the plain mean of the contributing intensities is
    accumulated. If ``psi`` and ``weights`` are given, the weighted average
    of the contributing intensities is written to ``psi`` (0 where no weight
    contributes).

    Returns
    -------
    tuple
        Sum of the per-pixel means, number of covered pixels, and the peak
        intensity of every view within the slab.
    """
    region = slice(start, start + loop_size)
    shape = images[0][region].shape

    sum_plain = np.zeros(shape, dtype=np.float64)
    count = np.zeros(shape, dtype=np.int32)
    max_values = np.zeros(len(images), dtype=np.float32)

    fuse = psi is not None and weights is not None
    if fuse:
        sum_i = np.zeros(shape, dtype=np.float64)
        sum_w = np.zeros(shape, dtype=np.float64)

    for j, image in enumerate(images):
        intensity = image[region]
        has_data = intensity > 0
        if not has_data.any():
            continue

        max_values[j] = intensity[has_data].max()
        sum_plain += np.where(has_data, intensity, 0)
        count += has_data

        if fuse:
            weight = np.where(has_data, weights[j][region], 0)
            sum_i += intensity * weight
            sum_w += weight

    if fuse:
        with np.errstate(divide="ignore", invalid="ignore"):
            psi[region] = np.where(sum_w > 0, sum_i / sum_w, 0)

    covered = count > 0
    real_sum = float(np.sum(sum_plain[covered] / count[covered], dtype=np.float64))
    return real_sum, int(np.count_nonzero(covered)), max_values


def collect_statistics(futures: List) -> Tuple[float, int, np.ndarray]:
    """Combine the results of :func:`intensity_statistics` tasks."""
    total, count, max_values = 0.0, 0, None
    for future in futures:
        s, c, m = future.result()
        total += s
        count += c
        max_values = m if max_values is None else np.maximum(max_values, m)
    return total, count, max_values
