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
from scipy import ndimage

# Local Imports
from mvdecon.deconvolution.convolution import BlockConvolution


@pytest.fixture
def image():
    return np.random.default_rng(7).uniform(0.5, 2.0, (12, 10, 14)).astype(np.float32)


@pytest.fixture
def kernel():
    # asymmetric, so a flipped kernel would be detected
    rng = np.random.default_rng(8)
    k = rng.uniform(0.0, 1.0, (3, 5, 7)).astype(np.float32)
    return k / k.sum()


class TestBlockConvolution:
    """Test suite for FFT convolution of block buffers."""

    def test_mirror_boundary(self, image, kernel):
        convolution = BlockConvolution(image.shape, kernel)
        result = convolution.convolve(image, mode="reflect")

        expected = ndimage.convolve(image.astype(np.float64), kernel.astype(np.float64), mode="mirror")
        np.testing.assert_allclose(result, expected, rtol=1e-4)

    def test_constant_boundary(self, image, kernel):
        convolution = BlockConvolution(image.shape, kernel)
        result = convolution.convolve(image, mode="constant", cval=1.0)

        expected = ndimage.convolve(
            image.astype(np.float64), kernel.astype(np.float64), mode="constant", cval=1.0
        )
        np.testing.assert_allclose(result, expected, rtol=1e-4)

    def test_writes_into_out(self, image, kernel):
        convolution = BlockConvolution(image.shape, kernel, workers=2)
        out = np.zeros(image.shape, dtype=np.float32)

        returned = convolution.convolve(image, out=out)

        assert returned is out
        assert out.any()

    def test_constant_image_with_unit_boundary(self, kernel):
        ones = np.ones((6, 6, 6), dtype=np.float32)
        result = BlockConvolution(ones.shape, kernel).convolve(ones, mode="constant", cval=1.0)
        np.testing.assert_allclose(result, 1.0, rtol=1e-5)

    def test_delta_kernel_is_identity(self, image):
        delta = np.zeros((1, 1, 1), dtype=np.float32)
        delta[0, 0, 0] = 1.0
        result = BlockConvolution(image.shape, delta).convolve(image)
        np.testing.assert_allclose(result, image, rtol=1e-5)

    def test_geometry(self, kernel):
        convolution = BlockConvolution((12, 10, 14), kernel)
        assert convolution.pad_width == ((1, 1), (2, 2), (3, 3))
        assert all(f >= b + k - 1 for f, b, k in zip(convolution.fft_shape, (12, 10, 14), kernel.shape))

    def test_wrong_buffer_shape(self, kernel):
        convolution = BlockConvolution((8, 8, 8), kernel)
        with pytest.raises(ValueError):
            convolution.convolve(np.zeros((8, 8, 7), dtype=np.float32))

    def test_dimensionality_mismatch(self):
        with pytest.raises(ValueError):
            BlockConvolution((8, 8), np.ones((3, 3, 3), dtype=np.float32))
