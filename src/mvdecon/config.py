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

"""Run-wide configuration for multi-view deconvolution."""

# Standard Library Imports
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

# Third Party Imports

# Local Imports
from mvdecon.errors import DeconvolutionConfigurationError


class PsiInitType(str, Enum):
    """How the deconvolved image is initialized."""

    FUSED_BLURRED = "fused_blurred"
    AVG = "avg"
    APPROX_AVG = "approx_avg"
    FROM_FILE = "from_file"


class ComputeType(str, Enum):
    """Whether views are updated one after another or jointly per block."""

    SEQUENTIAL = "sequential"
    SIMULTANEOUS = "simultaneous"


class PSFType(str, Enum):
    """How the second (back-projection) kernel of a view is derived."""

    INDEPENDENT = "independent"
    EFFICIENT_BAYESIAN = "efficient_bayesian"
    OPTIMIZATION_II = "optimization_ii"


@dataclass(frozen=True)
class DeconvolutionConfig:
    """Immutable set of knobs shared by all deconvolution components.

    Parameters
    ----------
    block_size : tuple of int
        Size (z, y, x) of the buffer processed by one block, including the
        support required by the two convolutions.
    num_iterations : int
        Number of full passes over all views. There is no early exit.
    lambda_ : float
        Tikhonov regularization parameter. 0 disables regularization.
    min_value : float
        Lowest value allowed in the deconvolved image.
    min_value_img : float
        Lowest value of input pixels that carry data.
    outside_value_img : float
        Value of input pixels that carry no data.
    psi_init_type : PsiInitType
        Strategy used for the initial guess.
    blur_sigma : float
        Sigma of the Gaussian applied to the fused initial guess.
    approx_samples : int
        Number of sampled pixels per view for the approximate average.
    precise_avg : bool
        Whether file/raster initializations compute the average precisely.
    psi_init_path : Path, optional
        File used by ``PsiInitType.FROM_FILE``.
    psf_type : PSFType
        Derivation of the back-projection kernel.
    compute_type : ComputeType
        Sequential or simultaneous view updates.
    filter_blocks_for_content : bool
        Drop blocks whose weights are zero everywhere.
    num_parallel_blocks : int
        Number of blocks processed concurrently within one batch.
    num_threads : int, optional
        Size of the shared thread pool. Defaults to the CPU count.
    replace_nan_average : bool
        Replace a NaN average by 1.0 (with a warning) instead of failing.
    debug : bool
        Record snapshots of the deconvolved image.
    debug_interval : int
        Record a snapshot every ``debug_interval`` iterations.
    """

    block_size: Tuple[int, int, int] = (384, 384, 384)
    num_iterations: int = 10
    lambda_: float = 0.0006
    min_value: float = 0.0001
    min_value_img: float = 1.0
    outside_value_img: float = 0.0
    psi_init_type: PsiInitType = PsiInitType.FUSED_BLURRED
    blur_sigma: float = 5.0
    approx_samples: int = 1000
    precise_avg: bool = True
    psi_init_path: Optional[Path] = None
    psf_type: PSFType = PSFType.INDEPENDENT
    compute_type: ComputeType = ComputeType.SEQUENTIAL
    filter_blocks_for_content: bool = True
    num_parallel_blocks: int = 1
    num_threads: Optional[int] = None
    replace_nan_average: bool = True
    debug: bool = False
    debug_interval: int = 1

    def __post_init__(self):
        block_size = tuple(int(b) for b in self.block_size)
        if len(block_size) != 3 or min(block_size) < 1:
            raise DeconvolutionConfigurationError(
                f"Block size must be three positive integers, got {self.block_size}"
            )
        object.__setattr__(self, "block_size", block_size)
        object.__setattr__(self, "psi_init_type", PsiInitType(self.psi_init_type))
        object.__setattr__(self, "psf_type", PSFType(self.psf_type))
        object.__setattr__(self, "compute_type", ComputeType(self.compute_type))

        if self.psi_init_path is not None:
            object.__setattr__(self, "psi_init_path", Path(self.psi_init_path))

        if self.num_iterations < 0:
            raise DeconvolutionConfigurationError("Number of iterations must be >= 0")
        if self.lambda_ < 0:
            raise DeconvolutionConfigurationError("Lambda must be >= 0")
        if self.min_value <= 0:
            raise DeconvolutionConfigurationError("Minimal value must be positive")
        if self.num_parallel_blocks < 1:
            raise DeconvolutionConfigurationError("At least one parallel block is required")
        if self.num_threads is not None and self.num_threads < 1:
            raise DeconvolutionConfigurationError("Number of threads must be positive")
        if self.debug_interval < 1:
            raise DeconvolutionConfigurationError("Debug interval must be positive")
        if (
            self.psi_init_type == PsiInitType.FROM_FILE
            and self.psi_init_path is None
        ):
            raise DeconvolutionConfigurationError(
                "PsiInitType.FROM_FILE requires psi_init_path"
            )

    def with_overrides(self, **kwargs) -> "DeconvolutionConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **kwargs)


def as_block_size(value: Union[int, str, Tuple[int, ...]]) -> Tuple[int, int, int]:
    """Parse a block size given as an int, a ``"z,y,x"`` string, or a tuple."""
    if isinstance(value, int):
        return (value, value, value)
    if isinstance(value, str):
        if "," in value:
            value = tuple(int(x) for x in value.split(","))
        else:
            return as_block_size(int(value))
    value = tuple(int(x) for x in value)
    if len(value) != 3:
        raise DeconvolutionConfigurationError(
            f"Block size must have three entries, got {value}"
        )
    return value
