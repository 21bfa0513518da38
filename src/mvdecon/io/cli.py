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
import argparse

from mvdecon.config import ComputeType, PSFType, PsiInitType


def create_parser() -> argparse.ArgumentParser:
    """Build the parser of the ``mvdecon`` command.

    Every view is given by one ``--image``, one ``--psf``, and optionally
    one ``--weight``, in the same order.

    Returns
    -------
    argparse.ArgumentParser
        The configured parser.
    """
    parser = argparse.ArgumentParser(
        description="Block-parallel multi-view Richardson-Lucy deconvolution"
    )

    input_args = parser.add_argument_group("Input Arguments")
    input_args.add_argument(
        "-i",
        "--image",
        action="append",
        required=True,
        help="Image of one view (TIFF, .zarr, .n5, .h5, .npy/.npz). Repeat per view.",
    )
    input_args.add_argument(
        "-w",
        "--weight",
        action="append",
        default=None,
        help="Weight of one view, same order as --image. Defaults to 1 everywhere.",
    )
    input_args.add_argument(
        "-p",
        "--psf",
        action="append",
        required=True,
        help="PSF of one view, same order as --image. A single PSF is used for all views.",
    )

    output_args = parser.add_argument_group("Output Arguments")
    output_args.add_argument(
        "-o",
        "--output",
        type=str,
        default="deconvolved.tif",
        help="Path of the deconvolved TIFF",
    )
    output_args.add_argument(
        "--log-directory",
        type=str,
        default=None,
        help="Directory for the log file. Defaults to the current directory.",
    )

    decon_args = parser.add_argument_group("Deconvolution Arguments")
    decon_args.add_argument("-n", "--iterations", type=int, default=10, help="Number of iterations")
    decon_args.add_argument(
        "-l", "--lambda", dest="lambda_", type=float, default=0.0006,
        help="Tikhonov regularization parameter, 0 disables it",
    )
    decon_args.add_argument(
        "-b",
        "--block-size",
        type=str,
        default="384,384,384",
        help="Block size, e.g. '256,256,128' or single int",
    )
    decon_args.add_argument(
        "--psi-init",
        choices=[t.value for t in PsiInitType],
        default=PsiInitType.FUSED_BLURRED.value,
        help="Initialization of the deconvolved image",
    )
    decon_args.add_argument(
        "--psi-init-path",
        type=str,
        default=None,
        help="Raster used with --psi-init from_file",
    )
    decon_args.add_argument(
        "--psf-type",
        choices=[t.value for t in PSFType],
        default=PSFType.INDEPENDENT.value,
        help="Derivation of the back-projection kernel",
    )
    decon_args.add_argument(
        "--compute",
        choices=[t.value for t in ComputeType],
        default=ComputeType.SEQUENTIAL.value,
        help="Update views one after another or jointly",
    )
    decon_args.add_argument(
        "--filter-blocks",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Skip blocks without any weighted pixel",
    )
    decon_args.add_argument(
        "--parallel-blocks", type=int, default=1, help="Blocks processed concurrently"
    )
    decon_args.add_argument(
        "-t", "--threads", type=int, default=None, help="Size of the thread pool"
    )
    decon_args.add_argument(
        "--adjust-input",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Clamp data pixels to the minimal image value before deconvolving",
    )
    decon_args.add_argument(
        "--debug-interval",
        type=int,
        default=None,
        help="Save a snapshot of the deconvolved image every N iterations",
    )

    return parser


def display_logo():
    logo = r"""
                      _
     _ __ _____ __  __| | ___  ___ ___  _ __
    | '_ ` _ \ \ / / _` |/ _ \/ __/ _ \| '_ \
    | | | | | \ V / (_| |  __/ (_| (_) | | | |
    |_| |_| |_|\_/ \__,_|\___|\___\___/|_| |_|

    """
    print(logo)
