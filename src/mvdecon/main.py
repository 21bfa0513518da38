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
import os
import sys
from pathlib import Path
from typing import List, Optional

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.config import ComputeType, DeconvolutionConfig, as_block_size
from mvdecon.deconvolution import DeconView, DeconViews, create_deconvolution
from mvdecon.deconvolution.psf import largest_shape, make_same_size
from mvdecon.errors import DeconvolutionConfigurationError, DeconvolutionMemoryError
from mvdecon.io.cli import create_parser, display_logo
from mvdecon.io.log import initiate_logger, log_and_echo
from mvdecon.io.read import read_volume
from mvdecon.io.write import save_tiff
from mvdecon.normalization import adjust_input
from mvdecon.utils import create_executor_service


def _expand(values: Optional[List[str]], num_views: int, name: str) -> List[Optional[str]]:
    """One entry per view; a single entry is shared by all views."""
    if not values:
        return [None] * num_views
    if len(values) == 1:
        return values * num_views
    if len(values) != num_views:
        raise DeconvolutionConfigurationError(
            f"Got {len(values)} {name} file(s) for {num_views} view(s)."
        )
    return values


def main(argv: Optional[List[str]] = None) -> int:
    """Run the mvdecon command line interface."""
    display_logo()

    parser = create_parser()
    args = parser.parse_args(argv)

    logger = initiate_logger(args.log_directory or os.getcwd())
    logger.info("Starting mvdecon")
    logger.info(f"Command line arguments: {args}")

    try:
        config = DeconvolutionConfig(
            block_size=as_block_size(args.block_size),
            num_iterations=args.iterations,
            lambda_=args.lambda_,
            psi_init_type=args.psi_init,
            psi_init_path=args.psi_init_path,
            psf_type=args.psf_type,
            compute_type=args.compute,
            filter_blocks_for_content=args.filter_blocks,
            num_parallel_blocks=args.parallel_blocks,
            num_threads=args.threads,
            debug=args.debug_interval is not None,
            debug_interval=args.debug_interval or 1,
        )

        num_views = len(args.image)
        weight_paths = _expand(args.weight, num_views, "weight")
        psf_paths = _expand(args.psf, num_views, "PSF")

        images = [read_volume(p) for p in args.image]
        weights = [
            read_volume(p) if p is not None else np.ones(images[i].shape, dtype=np.float32)
            for i, p in enumerate(weight_paths)
        ]
        kernels = [read_volume(p) for p in psf_paths]

        filter_blocks = config.filter_blocks_for_content
        if config.compute_type == ComputeType.SIMULTANEOUS:
            # identical block structures require identical kernel sizes
            shape = largest_shape(kernels)
            kernels = [make_same_size(k, shape) for k in kernels]
            filter_blocks = False

        if args.adjust_input:
            images = [
                adjust_input(img, w, config.min_value_img, config.outside_value_img)
                for img, w in zip(images, weights)
            ]

        service = create_executor_service(config.num_threads)
        views = DeconViews(
            [
                DeconView(
                    service,
                    img,
                    w,
                    k,
                    psf_type=config.psf_type,
                    block_size=config.block_size,
                    filter_blocks_for_content=filter_blocks,
                    title=Path(path).name,
                )
                for img, w, k, path in zip(images, weights, kernels, args.image)
            ],
            service,
        )

        decon = create_deconvolution(views, config)
        if not decon.init_was_successful():
            decon.shutdown()
            service.shutdown()
            log_and_echo(logger, "Initialization failed, stopping.", "error")
            return 1

        decon.run_iterations()
        service.shutdown()

        save_tiff(args.output, decon.get_psi())
        if decon.get_debug_stack() is not None:
            debug_path = Path(args.output).with_suffix(".debug.tif")
            decon.get_debug_stack().save(debug_path)

    except (DeconvolutionConfigurationError, DeconvolutionMemoryError) as e:
        log_and_echo(logger, str(e), "error")
        return 1

    log_and_echo(logger, f"Deconvolved image saved to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
