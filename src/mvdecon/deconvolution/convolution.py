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

"""FFT convolution of fixed-size block buffers with a precomputed kernel."""

# Standard Library Imports
import logging
from typing import Optional, Sequence

# Third Party Imports
import numpy as np
from scipy import fft as sp_fft

# Local Imports

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class BlockConvolution:
    """Convolve buffers of one shape with one kernel.

    The kernel transform is computed once and shared read-only, so one
    instance can be used by all block workers concurrently.

    Parameters
    ----------
    block_shape : sequence of int
        Shape of the buffers that will be convolved.
    kernel : np.ndarray
        Convolution kernel, centered at ``kernel.shape // 2``.
    workers : int
        Number of threads used by ``scipy.fft``.
    """

    def __init__(self, block_shape: Sequence[int], kernel: np.ndarray, workers: int = 1):
        self.block_shape = tuple(int(b) for b in block_shape)
        self.kernel_shape = tuple(kernel.shape)
        self.workers = workers

        if len(self.block_shape) != len(self.kernel_shape):
            raise ValueError(
                f"Block shape {self.block_shape} and kernel shape "
                f"{self.kernel_shape} have different dimensionality."
            )

        self.pad_width = tuple(
            (k // 2, k - 1 - k // 2) for k in self.kernel_shape
        )
        self.fft_shape = tuple(
            sp_fft.next_fast_len(b + k - 1, real=True)
            for b, k in zip(self.block_shape, self.kernel_shape)
        )
        self.valid = tuple(
            slice(k - 1, k - 1 + b) for b, k in zip(self.block_shape, self.kernel_shape)
        )
        self.kernel_fft = sp_fft.rfftn(
            np.asarray(kernel, dtype=np.float32), s=self.fft_shape, workers=workers
        )

        logger.debug(
            f"Kernel {self.kernel_shape} transformed for blocks {self.block_shape} "
            f"(FFT size {self.fft_shape})."
        )

    def convolve(
        self,
        image: np.ndarray,
        out: Optional[np.ndarray] = None,
        mode: str = "reflect",
        cval: float = 0.0,
    ) -> np.ndarray:
        """Convolve ``image`` and write the result to ``out``.

        Parameters
        ----------
        image : np.ndarray
            Buffer of shape ``block_shape``.
        out : np.ndarray, optional
            Output buffer of shape ``block_shape``. Allocated if None.
        mode : str
            Boundary extension, ``"reflect"`` (mirror without repeating the
            border pixel) or ``"constant"``.
        cval : float
            Value outside of the buffer for ``mode="constant"``.

        Returns
        -------
        np.ndarray
            The convolved buffer.
        """
        if image.shape != self.block_shape:
            raise ValueError(
                f"Expected a buffer of shape {self.block_shape}, got {image.shape}."
            )

        if mode == "constant":
            padded = np.pad(image, self.pad_width, mode="constant", constant_values=cval)
        else:
            padded = np.pad(image, self.pad_width, mode=mode)

        spectrum = sp_fft.rfftn(padded, s=self.fft_shape, workers=self.workers)
        spectrum *= self.kernel_fft
        result = sp_fft.irfftn(spectrum, s=self.fft_shape, workers=self.workers)

        if out is None:
            out = np.empty(self.block_shape, dtype=np.float32)
        out[...] = result[self.valid]
        return out
