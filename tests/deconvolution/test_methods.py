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
import numpy as np
import pytest

# Local Imports
from mvdecon.deconvolution.methods import (
    compute_final_values,
    compute_final_values_mul,
    compute_next_values,
    compute_next_values_mul,
    compute_quotient,
    tikhonov,
)


# ======================================================================
# Quotient
# ======================================================================
class TestComputeQuotient:
    def test_divides_where_data(self):
        blurred = np.array([2.0, 4.0, 0.5], dtype=np.float32)
        observed = np.array([1.0, 8.0, 2.0], dtype=np.float32)

        result = compute_quotient(blurred, observed)

        assert result is blurred
        np.testing.assert_allclose(result, [0.5, 2.0, 4.0])

    def test_no_data_is_neutral(self):
        blurred = np.array([2.0, 0.0, 3.0, 5.0], dtype=np.float32)
        observed = np.array([0.0, 0.0, -1.0, 5.0], dtype=np.float32)

        compute_quotient(blurred, observed)

        np.testing.assert_array_equal(blurred, [1.0, 1.0, 1.0, 1.0])


# ======================================================================
# Update
# ======================================================================
class TestTikhonov:
    def test_small_lambda_is_nearly_identity(self):
        values = np.linspace(0.01, 1.0, 20)
        np.testing.assert_allclose(tikhonov(values, 1e-6), values, rtol=1e-5)

    def test_damps_large_values(self):
        assert tikhonov(4.0, 1.0) == pytest.approx(2.0)
        assert tikhonov(4.0, 0.1) < 4.0


class TestComputeNextValues:
    """Test suite for the per-view update rule."""

    def test_full_weight_without_regularization(self):
        psi = np.array([1.0, 2.0, 3.0], dtype=np.float32)
        integral = np.array([2.0, 0.5, 1.0], dtype=np.float32)
        weight = np.ones(3, dtype=np.float32)

        result = compute_next_values(psi, integral, weight, 0.0, 1e-4, 1.0)

        np.testing.assert_allclose(result, [2.0, 1.0, 3.0])

    def test_weight_blends_with_previous(self):
        psi = np.array([2.0, 2.0, 2.0], dtype=np.float32)
        integral = np.array([3.0, 3.0, 3.0], dtype=np.float32)
        weight = np.array([0.0, 0.25, 1.0], dtype=np.float32)

        result = compute_next_values(psi, integral, weight, 0.0, 1e-4, 1.0)

        np.testing.assert_allclose(result, [2.0, 3.0, 6.0])

    def test_regularization_normalized_by_max_intensity(self):
        psi = np.array([4.0], dtype=np.float32)
        integral = np.array([2.0], dtype=np.float32)
        weight = np.ones(1, dtype=np.float32)

        result = compute_next_values(psi, integral, weight, 1.0, 1e-4, 2.0)

        # value 8, normalized 4, damped 2, rescaled 4
        np.testing.assert_allclose(result, [4.0], rtol=1e-6)

    @pytest.mark.parametrize("lambda_", [0.0, 0.0006, 0.1])
    def test_floor_holds(self, lambda_):
        min_value = 0.01
        psi = np.array([1.0, 1.0, 1.0, 1.0, 0.5], dtype=np.float32)
        integral = np.array([np.nan, -3.0, 0.0, 1e-6, np.inf], dtype=np.float32)
        weight = np.ones(5, dtype=np.float32)

        result = compute_next_values(psi, integral, weight, lambda_, min_value, 10.0)

        assert np.all(result[:4] >= min_value)
        np.testing.assert_allclose(result[:3], min_value, rtol=1e-5)
        assert not np.isnan(result[:4]).any()


class TestComputeNextValuesMul:
    def test_identical_views_match_single_view(self):
        rng = np.random.default_rng(3)
        psi = rng.uniform(0.5, 2.0, (4, 5, 6)).astype(np.float32)
        integral = rng.uniform(0.5, 1.5, (4, 5, 6)).astype(np.float32)
        weight = rng.uniform(0.0, 1.0, (4, 5, 6)).astype(np.float32)

        single = compute_next_values(psi, integral, weight, 0.0006, 1e-4, 100.0)
        combined = compute_next_values_mul(
            psi, [integral] * 3, [weight / 3] * 3, 0.0006, 1e-4, 100.0
        )

        np.testing.assert_allclose(combined, single, rtol=1e-5)

    def test_geometric_mean_and_weight_cap(self):
        psi = np.ones(1, dtype=np.float32)
        integrals = [np.array([2.0], dtype=np.float32), np.array([8.0], dtype=np.float32)]
        weights = [np.ones(1, dtype=np.float32), np.ones(1, dtype=np.float32)]

        result = compute_next_values_mul(psi, integrals, weights, 0.0, 1e-4, 1.0)

        np.testing.assert_allclose(result, [4.0], rtol=1e-6)


# ======================================================================
# In-place update with statistics
# ======================================================================
class TestComputeFinalValues:
    def test_updates_in_place_and_measures(self):
        psi = np.array([1.0, 2.0, 3.0, 4.0], dtype=np.float32)
        integral = np.array([2.0, 1.0, 0.5, 1.5], dtype=np.float32)
        weight = np.ones(4, dtype=np.float32)

        sum_change, max_change = compute_final_values(psi, integral, weight, 0.0, 1e-4, 1.0)

        np.testing.assert_allclose(psi, [2.0, 2.0, 1.5, 6.0])
        assert sum_change == pytest.approx(1.0 + 0.0 + 1.5 + 2.0)
        assert max_change == pytest.approx(2.0)

    def test_statistics_restricted_to_region(self):
        psi = np.array([1.0, 2.0, 3.0, 4.0], dtype=np.float32)
        integral = np.array([2.0, 1.0, 0.5, 1.5], dtype=np.float32)
        weight = np.ones(4, dtype=np.float32)

        sum_change, max_change = compute_final_values(
            psi, integral, weight, 0.0, 1e-4, 1.0, region=(slice(1, 3),)
        )

        assert sum_change == pytest.approx(1.5)
        assert max_change == pytest.approx(1.5)
        # the whole buffer is updated
        assert psi[3] == pytest.approx(6.0)

    def test_empty_region(self):
        psi = np.ones(3, dtype=np.float32)
        result = compute_final_values(
            psi, np.full(3, 2.0, np.float32), np.ones(3, np.float32), 0.0, 1e-4, 1.0,
            region=(slice(1, 1),),
        )
        assert result == (0.0, 0.0)

    def test_mul_variant(self):
        psi = np.array([1.0, 2.0], dtype=np.float32)
        integrals = [np.array([4.0, 1.0], dtype=np.float32), np.array([1.0, 1.0], dtype=np.float32)]
        weights = [np.ones(2, dtype=np.float32), np.zeros(2, dtype=np.float32)]

        sum_change, max_change = compute_final_values_mul(
            psi, integrals, weights, 0.0, 1e-4, 1.0
        )

        np.testing.assert_allclose(psi, [2.0, 2.0], rtol=1e-6)
        assert sum_change == pytest.approx(1.0, rel=1e-6)
        assert max_change == pytest.approx(1.0, rel=1e-6)
