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

"""Normalization of kernels and input images prior to deconvolution."""

# Standard Library Imports
import logging
from concurrent.futures import Executor
from typing import Optional

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.errors import DeconvolutionConfigurationError
from mvdecon.utils import divide_into_portions, executor_num_threads

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def sum_image(img: np.ndarray, service: Optional[Executor] = None) -> float:
    """Sum of all pixels, accumulated in double precision.

    Parameters
    ----------
    img : np.ndarray
        Image to sum.
    service : Executor, optional
        If given, the image is summed in contiguous portions on this pool.

    Returns
    -------
    float
        The sum over all pixels.
    """
    values = np.asarray(img).ravel()
    if service is None:
        return float(np.sum(values, dtype=np.float64))

    portions = divide_into_portions(values.size, 4 * executor_num_threads(service))
    futures = [
        service.submit(np.sum, values[start : start + loop_size], dtype=np.float64)
        for start, loop_size in portions
    ]
    return float(sum(future.result() for future in futures))


def norm_to_sum1(img: np.ndarray, service: Optional[Executor] = None) -> np.ndarray:
    """Return a float32 copy of ``img`` whose pixels sum to one.

    Raises
    ------
    DeconvolutionConfigurationError
        If the image does not have a positive sum.
    """
    img = np.array(img, dtype=np.float32)
    total = sum_image(img, service)
    if not total > 0:
        raise DeconvolutionConfigurationError(
            f"Cannot normalize an image with sum {total} to 1."
        )
    img /= np.float32(total)
    return img


def adjust_input(
    image: np.ndarray,
    weight: np.ndarray,
    min_value_img: float = 1.0,
    outside_value_img: float = 0.0,
) -> np.ndarray:
    """Prepare an observed image for deconvolution.

    Pixels that carry data (non-zero weight) are raised to at least
    ``min_value_img``, so they never read as missing. Pixels without data
    are set to ``outside_value_img``.

    Parameters
    ----------
    image : np.ndarray
        Observed image of one view.
    weight : np.ndarray
        Weight of the view, same shape as ``image``.
    min_value_img : float
        Lowest value of a pixel that carries data.
    outside_value_img : float
        Value of pixels without data.

    Returns
    -------
    np.ndarray
        Adjusted float32 copy of the image.
    """
    if image.shape != weight.shape:
        raise DeconvolutionConfigurationError(
            f"Image shape {image.shape} and weight shape {weight.shape} differ."
        )

    adjusted = np.array(image, dtype=np.float32)
    has_data = np.asarray(weight) != 0
    np.maximum(adjusted, np.float32(min_value_img), out=adjusted, where=has_data)
    adjusted[~has_data] = outside_value_img

    logger.debug(
        f"Adjusted input: {int(np.count_nonzero(has_data))} data pixels, "
        f"{int(has_data.size - np.count_nonzero(has_data))} outside pixels."
    )
    return adjusted
