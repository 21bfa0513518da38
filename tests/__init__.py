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
from typing import Sequence, Tuple

# Third Party Imports
import numpy as np
from scipy import ndimage

# Local Imports


def gaussian_kernel(size: int = 5, sigma: float = 1.0, ndim: int = 3) -> np.ndarray:
    """Isotropic Gaussian PSF of odd ``size`` normalized to sum 1.

    Parameters
    ----------
    size : int
        Edge length of the kernel.
    sigma : float
        Standard deviation in pixels.
    ndim : int
        Number of dimensions.

    Returns
    -------
    np.ndarray
        The kernel as float32.
    """
    kernel = np.zeros((size,) * ndim, dtype=np.float64)
    kernel[(size // 2,) * ndim] = 1.0
    kernel = ndimage.gaussian_filter(kernel, sigma=sigma, mode="constant")
    return (kernel / kernel.sum()).astype(np.float32)


def delta_kernel(size: int = 1, ndim: int = 3) -> np.ndarray:
    """Identity PSF: a single one at the center."""
    kernel = np.zeros((size,) * ndim, dtype=np.float32)
    kernel[(size // 2,) * ndim] = 1.0
    return kernel


def synthetic_beads(
    shape: Sequence[int] = (16, 24, 24),
    num_beads: int = 12,
    background: float = 10.0,
    intensity: float = 200.0,
    seed: int = 42,
) -> np.ndarray:
    """Sparse point sources on a constant background."""
    rng = np.random.default_rng(seed)
    volume = np.full(shape, background, dtype=np.float32)
    for _ in range(num_beads):
        position = tuple(int(rng.integers(0, s)) for s in shape)
        volume[position] += intensity
    return volume


def blurred_view(truth: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Observation of ``truth`` through ``kernel``, mirror boundary."""
    return ndimage.convolve(truth, kernel, mode="mirror").astype(np.float32)


def half_weights(shape: Sequence[int], axis: int = 2) -> Tuple[np.ndarray, np.ndarray]:
    """Two complementary binary weights splitting ``shape`` along ``axis``."""
    first = np.zeros(shape, dtype=np.float32)
    index = [slice(None)] * len(shape)
    index[axis] = slice(0, shape[axis] // 2)
    first[tuple(index)] = 1.0
    return first, 1.0 - first
