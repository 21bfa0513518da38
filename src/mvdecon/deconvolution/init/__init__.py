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

# Third Party Imports

# Local Imports
from mvdecon.config import DeconvolutionConfig, PsiInitType
from mvdecon.deconvolution.init.average import PsiInitAvgApprox, PsiInitAvgPrecise
from mvdecon.deconvolution.init.base import PsiInit
from mvdecon.deconvolution.init.blurred_fused import PsiInitBlurredFused
from mvdecon.deconvolution.init.from_raster import PsiInitFromFile, PsiInitFromRaster


def create_psi_init(config: DeconvolutionConfig) -> PsiInit:
    """Select the initialization strategy of a run by its type."""
    init_type = config.psi_init_type
    nan = config.replace_nan_average

    if init_type == PsiInitType.FUSED_BLURRED:
        return PsiInitBlurredFused(config.blur_sigma, replace_nan_average=nan)
    if init_type == PsiInitType.AVG:
        return PsiInitAvgPrecise(replace_nan_average=nan)
    if init_type == PsiInitType.APPROX_AVG:
        return PsiInitAvgApprox(config.approx_samples, replace_nan_average=nan)
    if init_type == PsiInitType.FROM_FILE:
        return PsiInitFromFile(config.psi_init_path, config.precise_avg, replace_nan_average=nan)
    raise ValueError(f"Unsupported PSI initialization: {init_type}")


__all__ = [
    "PsiInit",
    "PsiInitAvgApprox",
    "PsiInitAvgPrecise",
    "PsiInitBlurredFused",
    "PsiInitFromFile",
    "PsiInitFromRaster",
    "create_psi_init",
]
