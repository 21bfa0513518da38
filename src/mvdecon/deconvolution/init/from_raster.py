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
import os
from concurrent.futures import Executor
from typing import TYPE_CHECKING, Sequence, Union

# Third Party Imports
import dask.array as da
import numpy as np

# Local Imports
from mvdecon.deconvolution.init.average import PsiInitAvgApprox, PsiInitAvgPrecise
from mvdecon.deconvolution.init.base import PsiInit
from mvdecon.io.read import RasterOpener

if TYPE_CHECKING:
    from mvdecon.deconvolution.view import DeconView

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class PsiInitFromRaster(PsiInit):
    """Start from an existing raster, e.g. the result of an earlier run.

    ``avg`` and ``max`` are computed by an average strategy that leaves the
    copied raster untouched.

    Parameters
    ----------
    raster : np.ndarray or dask.array.Array
        Initial estimate with the dimensions of the deconvolved image.
    precise : bool
        Compute ``avg`` and ``max`` precisely instead of approximately.
    replace_nan_average : bool
        See :class:`PsiInit`.
    """

    def __init__(self, raster, precise: bool = True, replace_nan_average: bool = True):
        super().__init__(replace_nan_average)
        self.raster = raster
        if precise:
            self.init2: PsiInit = PsiInitAvgPrecise(False, replace_nan_average)
        else:
            self.init2 = PsiInitAvgApprox(set_img_to_avg=False, replace_nan_average=replace_nan_average)

    def _copy_onto(self, raster, psi: np.ndarray) -> bool:
        if tuple(raster.shape) != psi.shape:
            logger.error(f"Image dimensions do not match: {tuple(raster.shape)} != {psi.shape}")
            return False

        if isinstance(raster, da.Array):
            da.store(raster.astype(np.float32), psi, lock=False)
        else:
            psi[...] = raster
        return True

    def run_initialization(
        self,
        psi: np.ndarray,
        views: Sequence["DeconView"],
        service: Executor,
    ) -> bool:
        if not self._copy_onto(self.raster, psi):
            return False

        logger.info("Raster copied onto PSI for init, now computing avg & max.")
        if not self.init2.run_initialization(psi, views, service):
            return False

        self.avg = self.init2.get_avg()
        self.max = self.init2.get_max()
        return True


class PsiInitFromFile(PsiInitFromRaster):
    """Start from a raster stored in a file (TIFF, Zarr/N5, HDF5, NumPy)."""

    def __init__(
        self,
        path: Union[str, os.PathLike],
        precise: bool = True,
        replace_nan_average: bool = True,
    ):
        super().__init__(None, precise, replace_nan_average)
        self.path = path

    def run_initialization(
        self,
        psi: np.ndarray,
        views: Sequence["DeconView"],
        service: Executor,
    ) -> bool:
        try:
            raster, info = RasterOpener().open(self.path, prefer_dask=True)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot load init file: {self.path}: {e}")
            return False

        self.raster = da.squeeze(raster) if raster.ndim > psi.ndim else raster
        logger.info(f"Loaded {info.path} {info.shape} as initial estimate.")
        return super().run_initialization(psi, views, service)
