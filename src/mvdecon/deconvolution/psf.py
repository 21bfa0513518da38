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

"""Point spread functions of a view and the kernels derived from them."""

# Standard Library Imports
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

# Third Party Imports
import numpy as np
from scipy import signal

# Local Imports
from mvdecon.config import PSFType
from mvdecon.deconvolution.convolution import BlockConvolution
from mvdecon.normalization import norm_to_sum1

if TYPE_CHECKING:
    from mvdecon.deconvolution.views import DeconViews

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def mirror(kernel: np.ndarray) -> np.ndarray:
    """Point reflection of a kernel through its center."""
    return np.ascontiguousarray(kernel[(slice(None, None, -1),) * kernel.ndim])


def crop_center(kernel: np.ndarray, shape: Sequence[int]) -> np.ndarray:
    """Crop ``kernel`` symmetrically around its center to ``shape``."""
    slices = []
    for n, s in zip(kernel.shape, shape):
        start = max(0, (n - s) // 2)
        slices.append(slice(start, start + s))
    return kernel[tuple(slices)]


def make_same_size(kernel: np.ndarray, shape: Sequence[int]) -> np.ndarray:
    """Zero-pad ``kernel`` symmetrically so that it has ``shape``.

    Dimensions that are already larger are left untouched. The kernel
    center stays at the center as long as the size difference is even.
    """
    pad = []
    for n, s in zip(kernel.shape, shape):
        extra = max(0, int(s) - n)
        pad.append((extra // 2, extra - extra // 2))
    return np.pad(kernel, pad, mode="constant")


def largest_shape(kernels: Sequence[np.ndarray]) -> tuple:
    """Per-dimension maximum of the shapes of several kernels."""
    return tuple(int(max(dims)) for dims in zip(*(k.shape for k in kernels)))


def compute_exponential_kernel(kernel: np.ndarray, num_views: int) -> np.ndarray:
    """Mirrored kernel raised pixel-wise to the number of views."""
    exponential = np.power(mirror(kernel).astype(np.float64), num_views)
    return norm_to_sum1(exponential)


def compute_compound_kernel(view_index: int, kernels: Sequence[np.ndarray]) -> np.ndarray:
    """Efficient-Bayesian back-projection kernel of one view.

    Computes ``P_v* (*) prod_{w != v} (P_v* (*) P_w (*) P_w*)`` where ``(*)``
    is convolution and ``*`` the point reflection, crops it to the shape of
    ``P_v`` and normalizes it to sum 1.

    Parameters
    ----------
    view_index : int
        Index of the view whose kernel is computed.
    kernels : sequence of np.ndarray
        The normalized PSFs of all views.

    Returns
    -------
    np.ndarray
        The compound kernel with the shape of ``kernels[view_index]``.
    """
    kernel = np.asarray(kernels[view_index], dtype=np.float64)
    kernel_mirror = mirror(kernel)

    compound = kernel_mirror
    for w, other in enumerate(kernels):
        if w == view_index:
            continue
        other = np.asarray(other, dtype=np.float64)
        conditional = signal.fftconvolve(
            signal.fftconvolve(kernel_mirror, other, mode="full"),
            mirror(other),
            mode="full",
        )
        compound = signal.fftconvolve(compound, conditional, mode="full")

    compound = crop_center(compound, kernel.shape)

    # FFT round-off can produce tiny negative values
    compound = np.clip(compound, 0, None)
    return norm_to_sum1(compound)


class DeconViewPSF:
    """PSF of one view with its back-projection kernel and FFT caches.

    Parameters
    ----------
    kernel : np.ndarray
        Point spread function; normalized to sum 1 on construction.
    psf_type : PSFType
        Derivation of the back-projection kernel ``kernel2``.
    """

    def __init__(self, kernel: np.ndarray, psf_type: PSFType = PSFType.INDEPENDENT):
        self.psf_type = PSFType(psf_type)
        self.kernel1 = norm_to_sum1(kernel)
        self.kernel2: Optional[np.ndarray] = None
        self.convolution1: Optional[BlockConvolution] = None
        self.convolution2: Optional[BlockConvolution] = None

    @property
    def shape(self) -> tuple:
        return self.kernel1.shape

    def init(self, views: "DeconViews", block_size: Sequence[int]) -> None:
        """Compute ``kernel2`` and the kernel transforms for ``block_size``.

        Parameters
        ----------
        views : DeconViews
            All views; the compound and exponential kernels depend on them.
        block_size : sequence of int
            Shape of the block buffers that will be convolved.
        """
        kernels: List[np.ndarray] = [view.psf.kernel1 for view in views.views]

        if self.psf_type == PSFType.INDEPENDENT:
            self.kernel2 = mirror(self.kernel1)
        elif self.psf_type == PSFType.OPTIMIZATION_II:
            self.kernel2 = compute_exponential_kernel(self.kernel1, len(kernels))
        elif self.psf_type == PSFType.EFFICIENT_BAYESIAN:
            view_index = next(i for i, k in enumerate(kernels) if k is self.kernel1)
            self.kernel2 = compute_compound_kernel(view_index, kernels)
        else:
            raise ValueError(f"Unsupported PSF type: {self.psf_type}")

        self.convolution1 = BlockConvolution(block_size, self.kernel1, views.num_threads)
        self.convolution2 = BlockConvolution(block_size, self.kernel2, views.num_threads)

        logger.info(
            f"Initialized PSF {self.kernel1.shape} ({self.psf_type.value}) for "
            f"blocks of size {tuple(block_size)}."
        )

    @property
    def kernel1_fft(self) -> np.ndarray:
        return self.convolution1.kernel_fft

    @property
    def kernel2_fft(self) -> np.ndarray:
        return self.convolution2.kernel_fft
