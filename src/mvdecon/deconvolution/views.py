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
from typing import Iterable, List, Optional

# Third Party Imports

# Local Imports
from mvdecon.deconvolution.view import DeconView
from mvdecon.errors import DeconvolutionConfigurationError
from mvdecon.utils import create_executor_service, executor_num_threads

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class DeconViews:
    """All views of one deconvolution, sharing one output volume and pool.

    Constructing the collection validates the views and computes the
    frequency-domain kernels of every view once.

    Parameters
    ----------
    views : iterable of DeconView
        The input views, in a fixed order.
    service : Executor, optional
        Shared thread pool. A new one is created if None.

    Raises
    ------
    DeconvolutionConfigurationError
        If there are no views, if image or weight dimensions differ between
        views, or if the views use different block sizes.
    """

    def __init__(self, views: Iterable[DeconView], service: Optional[Executor] = None):
        self.views: List[DeconView] = list(views)

        if len(self.views) == 0:
            raise DeconvolutionConfigurationError("At least one view is required.")

        self.service = service if service is not None else create_executor_service()
        self.num_threads = executor_num_threads(self.service)

        dimensions = self.views[0].image.shape
        for view in self.views:
            if view.image.shape != dimensions or view.weight.shape != dimensions:
                raise DeconvolutionConfigurationError(
                    f"Dimensions of the input images & weights do not match: "
                    f"{dimensions} vs. {view.image.shape}/{view.weight.shape}"
                )

        block_size = self.views[0].block_size
        for view in self.views:
            if view.block_size != block_size:
                raise DeconvolutionConfigurationError(
                    f"All views must use the same block size: {block_size} vs. "
                    f"{view.block_size}"
                )

        self.dimensions = tuple(dimensions)
        self.block_size = block_size

        for view in self.views:
            view.psf.init(self, view.block_size)

        logger.info(
            f"Set up {len(self.views)} view(s) of size {self.dimensions} "
            f"using {self.num_threads} thread(s)."
        )

    @property
    def psi_dimensions(self) -> tuple:
        return self.dimensions

    def __len__(self) -> int:
        return len(self.views)

    def __iter__(self):
        return iter(self.views)
