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

"""Per-pixel arithmetic of one Richardson-Lucy update step.

All functions operate on whole NumPy buffers. The shapes of all arguments
are identical and equal to the block buffer.
"""

# Standard Library Imports
from typing import Optional, Sequence, Tuple

# Third Party Imports
import numpy as np

# Local Imports


def compute_quotient(psi_blurred: np.ndarray, observed_img: np.ndarray) -> np.ndarray:
    """Replace ``psi_blurred`` in place by ``observed_img / psi_blurred``.

    Pixels without image data (``observed_img <= 0``) get a quotient of
    exactly 1, so they do not bias the update.

    Parameters
    ----------
    psi_blurred : np.ndarray
        The current estimate convolved with the PSF. Overwritten.
    observed_img : np.ndarray
        The observed image of the view.

    Returns
    -------
    np.ndarray
        ``psi_blurred``, now holding the quotient.
    """
    has_data = observed_img > 0
    with np.errstate(divide="ignore", invalid="ignore"):
        np.divide(observed_img, psi_blurred, out=psi_blurred, where=has_data)
    psi_blurred[~has_data] = 1
    return psi_blurred


def tikhonov(value, lambda_: float):
    """Tikhonov damping of a multiplicative update, for ``lambda_ > 0``."""
    return (np.sqrt(1.0 + 2.0 * lambda_ * value) - 1.0) / lambda_


def _next_psi_values(
    last_psi: np.ndarray,
    value: np.ndarray,
    blend: np.ndarray,
    lambda_: float,
    min_intensity: float,
    max_intensity: float,
) -> np.ndarray:
    with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
        if lambda_ > 0:
            adjusted = tikhonov(value / max_intensity, lambda_) * max_intensity
        else:
            adjusted = value

        # NaN compares False, so it ends up at the minimum as well
        adjusted = np.where(value > 0, adjusted, min_intensity)
        next_psi = np.where(
            np.isnan(adjusted), min_intensity, np.maximum(min_intensity, adjusted)
        )

    blended = last_psi + (next_psi - last_psi) * blend
    # rounding of the blend must not undercut the floor
    return np.maximum(blended, min_intensity, out=blended)


def compute_next_values(
    last_psi: np.ndarray,
    integral: np.ndarray,
    weight: np.ndarray,
    lambda_: float,
    min_intensity: float,
    max_intensity: float,
) -> np.ndarray:
    """New estimate for one view.

    ``value = psi * integral`` is optionally regularized (with the intensity
    normalized by ``max_intensity``), floored at ``min_intensity`` and
    applied to the amount given by ``weight``.
    """
    value = last_psi * integral
    return _next_psi_values(
        last_psi, value, weight, lambda_, min_intensity, max_intensity
    )


def compute_next_values_mul(
    last_psi: np.ndarray,
    integrals: Sequence[np.ndarray],
    weights: Sequence[np.ndarray],
    lambda_: float,
    min_intensity: float,
    max_intensity: float,
) -> np.ndarray:
    """New estimate combining all views.

    The corrections are combined by their geometric mean, the weights by
    their sum capped at 1.
    """
    num_views = len(integrals)

    prod = np.ones(last_psi.shape, dtype=np.float64)
    sum_w = np.zeros(last_psi.shape, dtype=np.float64)
    for integral, weight in zip(integrals, weights):
        prod *= integral
        sum_w += weight

    with np.errstate(invalid="ignore"):
        prod = np.power(prod, 1.0 / num_views)
    np.minimum(sum_w, 1.0, out=sum_w)

    value = last_psi * prod.astype(np.float32)
    return _next_psi_values(
        last_psi, value, sum_w.astype(np.float32), lambda_, min_intensity, max_intensity
    )


def _store_and_measure(
    psi: np.ndarray,
    next_psi: np.ndarray,
    region: Optional[Tuple[slice, ...]],
) -> Tuple[float, float]:
    if region is None:
        region = tuple(slice(None) for _ in psi.shape)

    change = np.abs(next_psi[region] - psi[region], dtype=np.float32)
    psi[...] = next_psi

    if change.size == 0:
        return 0.0, 0.0
    return float(np.sum(change, dtype=np.float64)), float(np.max(change))


def compute_final_values(
    psi: np.ndarray,
    integral: np.ndarray,
    weight: np.ndarray,
    lambda_: float,
    min_intensity: float,
    max_intensity: float,
    region: Optional[Tuple[slice, ...]] = None,
) -> Tuple[float, float]:
    """Update ``psi`` in place for one view.

    Parameters
    ----------
    psi : np.ndarray
        The current estimate of the block. Overwritten.
    integral : np.ndarray
        The quotient convolved with the back-projection kernel.
    weight : np.ndarray
        Weight of the view for every pixel of the block.
    lambda_ : float
        Tikhonov parameter, 0 disables regularization.
    min_intensity : float
        Lowest value allowed in the estimate.
    max_intensity : float
        Maximal intensity of the view, normalizes ``lambda_``.
    region : tuple of slice, optional
        Part of the block for which the changes are measured. Defaults to
        the whole block.

    Returns
    -------
    tuple of float
        Sum and maximum of the absolute per-pixel changes within ``region``.
    """
    next_psi = compute_next_values(
        psi, integral, weight, lambda_, min_intensity, max_intensity
    )
    return _store_and_measure(psi, next_psi, region)


def compute_final_values_mul(
    psi: np.ndarray,
    integrals: Sequence[np.ndarray],
    weights: Sequence[np.ndarray],
    lambda_: float,
    min_intensity: float,
    max_intensity: float,
    region: Optional[Tuple[slice, ...]] = None,
) -> Tuple[float, float]:
    """Update ``psi`` in place combining all views, see :func:`compute_final_values`."""
    next_psi = compute_next_values_mul(
        psi, integrals, weights, lambda_, min_intensity, max_intensity
    )
    return _store_and_measure(psi, next_psi, region)
