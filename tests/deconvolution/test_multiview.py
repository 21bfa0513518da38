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
from concurrent.futures import ThreadPoolExecutor

# Third Party Imports
import numpy as np
import pytest
import tifffile

# Local Imports
from mvdecon.blocks import Block
from mvdecon.config import ComputeType, DeconvolutionConfig, PsiInitType
from mvdecon.deconvolution import (
    DeconView,
    DeconViews,
    MultiViewDeconvolutionMul,
    MultiViewDeconvolutionSeq,
    WriteBackQueue,
    create_deconvolution,
)
from mvdecon.deconvolution.init import PsiInitAvgPrecise, PsiInitFromRaster
from mvdecon.deconvolution.iteration import ComputeBlockSeqThreadCPU
from mvdecon.errors import DeconvolutionConfigurationError, DeconvolutionMemoryError
from tests import blurred_view, delta_kernel, gaussian_kernel, synthetic_beads


@pytest.fixture
def service():
    executor = ThreadPoolExecutor(max_workers=2)
    yield executor
    executor.shutdown()


def make_views(service, images, weights, kernels, block_size=(8, 8, 8), filter_blocks=True):
    return DeconViews(
        [
            DeconView(
                service,
                image,
                weight,
                kernel=kernel,
                block_size=block_size,
                filter_blocks_for_content=filter_blocks,
            )
            for image, weight, kernel in zip(images, weights, kernels)
        ],
        service,
    )


def run(views, config, psi_init=None):
    decon = create_deconvolution(views, config, psi_init)
    decon.run_iterations()
    return decon


# ======================================================================
# End-to-end behavior
# ======================================================================
class TestIdentityKernel:
    """A delta PSF reproduces the observed image after a single update."""

    @pytest.mark.parametrize("kernel_size", [1, 3])
    @pytest.mark.parametrize("num_iterations", [1, 3])
    def test_converges_to_image(self, service, kernel_size, num_iterations):
        image = np.random.default_rng(11).uniform(1.0, 10.0, (12, 14, 10)).astype(np.float32)
        views = make_views(service, [image], [None], [delta_kernel(kernel_size)])
        config = DeconvolutionConfig(
            block_size=(8, 8, 8),
            num_iterations=num_iterations,
            lambda_=0.0,
            psi_init_type=PsiInitType.AVG,
            num_parallel_blocks=2,
        )

        decon = run(views, config)

        np.testing.assert_allclose(decon.get_psi(), image, rtol=1e-4)


class TestPartialWeights:
    """Views only influence the part of the image they have weight in."""

    shape = (16, 16, 40)

    @pytest.fixture
    def setup(self):
        kernel = gaussian_kernel(5, 1.0)
        image = blurred_view(synthetic_beads(self.shape, num_beads=30), kernel)
        weight_a = np.zeros(self.shape, dtype=np.float32)
        weight_a[..., :16] = 1.0
        weight_b = np.zeros(self.shape, dtype=np.float32)
        weight_b[..., 24:] = 1.0
        return kernel, image, weight_a, weight_b

    def run_views(self, service, kernel, image, weights):
        views = make_views(
            service, [image] * len(weights), weights, [kernel] * len(weights), block_size=(16, 16, 16)
        )
        config = DeconvolutionConfig(block_size=(16, 16, 16), num_iterations=3)
        init = PsiInitFromRaster(np.full(self.shape, 50.0, dtype=np.float32))
        return run(views, config, init).get_psi()

    def test_region_of_first_view_is_independent_of_second(self, service, setup):
        kernel, image, weight_a, weight_b = setup

        both = self.run_views(service, kernel, image, [weight_a, weight_b])
        only_a = self.run_views(service, kernel, image, [weight_a])

        np.testing.assert_allclose(both[..., :16], only_a[..., :16], rtol=1e-4)

    def test_unweighted_region_keeps_initial_value(self, service, setup):
        kernel, image, weight_a, _ = setup

        only_a = self.run_views(service, kernel, image, [weight_a])

        np.testing.assert_array_equal(only_a[..., 16:], 50.0)
        assert not np.allclose(only_a[..., :16], 50.0)


class TestSimultaneousUpdate:
    def test_identical_views_match_single_view(self, service):
        kernel = gaussian_kernel(3, 0.8)
        image = blurred_view(synthetic_beads((12, 16, 16)), kernel)
        base = DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=3, psi_init_type=PsiInitType.AVG)

        single = run(make_views(service, [image], [None], [kernel]), base)
        combined = run(
            make_views(service, [image] * 3, [None] * 3, [kernel] * 3),
            base.with_overrides(compute_type=ComputeType.SIMULTANEOUS, num_parallel_blocks=2),
        )

        assert isinstance(single, MultiViewDeconvolutionSeq)
        assert isinstance(combined, MultiViewDeconvolutionMul)
        assert combined.test_block_integrity()
        np.testing.assert_allclose(combined.get_psi(), single.get_psi(), rtol=1e-4)

    def test_incompatible_blocks_raise(self, service):
        image = np.ones((16, 16, 16), dtype=np.float32)
        views = make_views(
            service,
            [image, image],
            [None, None],
            [gaussian_kernel(3), gaussian_kernel(5)],
            block_size=(16, 16, 16),
        )
        config = DeconvolutionConfig(block_size=(16, 16, 16), compute_type=ComputeType.SIMULTANEOUS)

        with pytest.raises(DeconvolutionConfigurationError):
            create_deconvolution(views, config)

    def test_block_integrity_is_checked_once(self, service, monkeypatch):
        image = np.ones((12, 12, 12), dtype=np.float32)
        views = make_views(service, [image, image], [None, None], [gaussian_kernel(3)] * 2)
        config = DeconvolutionConfig(block_size=(8, 8, 8), compute_type=ComputeType.SIMULTANEOUS)
        decon = create_deconvolution(views, config)

        def rescan(self):
            raise AssertionError("blocks scanned again")

        monkeypatch.setattr(MultiViewDeconvolutionMul, "_check_block_integrity", rescan)

        assert decon.init_was_successful()
        assert decon.test_block_integrity()
        decon.shutdown()


# ======================================================================
# Orchestration details
# ======================================================================
class TestMultiViewDeconvolution:
    """Test suite for iteration bookkeeping of the orchestrator."""

    @pytest.fixture
    def views(self, service):
        kernel = gaussian_kernel(3, 1.0)
        truth = synthetic_beads((12, 20, 20))
        image = blurred_view(truth, kernel)
        image[:, :, :4] = 0.0
        weight = np.ones(image.shape, dtype=np.float32)
        weight[:, :, 15:] = 0.5
        return make_views(service, [image, image], [weight, weight], [kernel, kernel])

    def test_fixed_number_of_iterations(self, views):
        decon = run(views, DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=4))

        assert decon.it == 4
        assert len(decon.statistics) == 4
        assert all(len(per_view) == 2 for per_view in decon.statistics)
        assert all(s.sum_change >= 0 and s.max_change >= 0 for it in decon.statistics for s in it)

    def test_statistics_aggregate_blocks(self, views):
        decon = run(views, DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=1))

        last = decon.statistics[-1][-1]
        assert len(decon.block_statistics) == sum(len(b) for b in views.views[1].non_interfering_blocks)
        assert last.sum_change == pytest.approx(sum(s.sum_change for s in decon.block_statistics))
        assert last.max_change == max(s.max_change for s in decon.block_statistics)

    def test_zero_iterations_keep_initialization(self, views):
        init = PsiInitAvgPrecise()
        decon = run(views, DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=0), init)

        np.testing.assert_allclose(decon.get_psi(), init.get_avg())
        assert decon.statistics == []

    def test_floor_holds(self, views):
        config = DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=3, min_value=0.5)
        psi = run(views, config).get_psi()

        assert psi.min() >= 0.5
        assert np.isfinite(psi).all()

    def test_parallel_blocks_are_deterministic(self, views):
        config = DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=2)

        serial = run(views, config).get_psi()
        parallel = run(views, config.with_overrides(num_parallel_blocks=3)).get_psi()

        np.testing.assert_array_equal(parallel, serial)

    @pytest.mark.parametrize("compute_type", [ComputeType.SEQUENTIAL, ComputeType.SIMULTANEOUS])
    def test_block_buffers_are_reused(self, views, monkeypatch, compute_type):
        crops = []
        crop_zero = Block.crop_zero

        def recording_crop_zero(self, source, out=None, dtype=np.float32):
            crops.append(out)
            return crop_zero(self, source, out=out, dtype=dtype)

        monkeypatch.setattr(Block, "crop_zero", recording_crop_zero)
        config = DeconvolutionConfig(
            block_size=(8, 8, 8),
            num_iterations=2,
            num_parallel_blocks=2,
            compute_type=compute_type,
        )
        decon = run(views, config)

        buffers = set()
        for block_thread in decon.compute_block_threads:
            for attr in ("img_block_tmp", "weight_block_tmp"):
                value = getattr(block_thread, attr)
                buffers.update(id(b) for b in (value if isinstance(value, list) else [value]))

        # border blocks are cropped into the per-worker buffers only
        assert crops
        assert all(out is not None and id(out) in buffers for out in crops)

    def test_inner_blocks_are_not_copied(self):
        source = np.random.default_rng(3).uniform(size=(12, 12, 12)).astype(np.float32)
        inner = Block((4, 4, 4), (2, 2, 2), (2, 2, 2), (6, 6, 6))
        border = Block((0, 0, 0), (2, 2, 2), (-2, -2, -2), (6, 6, 6))
        block_thread = ComputeBlockSeqThreadCPU((6, 6, 6), 1e-4, 0.006, 0)

        crop = block_thread.crop_view(inner, source, block_thread.img_block_tmp)
        assert np.shares_memory(crop, source)
        np.testing.assert_array_equal(crop, source[2:8, 2:8, 2:8])

        crop = block_thread.crop_view(border, source, block_thread.img_block_tmp)
        assert crop is block_thread.img_block_tmp
        np.testing.assert_array_equal(crop[2:, 2:, 2:], source[:4, :4, :4])
        assert not crop[:2].any()

    def test_single_block_view(self, service):
        image = np.random.default_rng(2).uniform(1.0, 5.0, (6, 6, 6)).astype(np.float32)
        views = make_views(service, [image], [None], [delta_kernel(3)], block_size=(16, 16, 16))
        assert views.views[0].num_blocks == 1

        config = DeconvolutionConfig(block_size=(16, 16, 16), num_iterations=1, lambda_=0.0)
        np.testing.assert_allclose(run(views, config).get_psi(), image, rtol=1e-4)

    def test_max_intensities(self, views):
        decon = create_deconvolution(views, DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=1))

        expected = views.views[0].image.max()
        np.testing.assert_allclose(decon.max, [expected, expected])
        assert decon.avg_max == pytest.approx(expected)
        decon.shutdown()

    def test_failed_initialization_is_a_noop(self, service, views):
        init = PsiInitFromRaster(np.ones((3, 3, 3), dtype=np.float32))
        decon = create_deconvolution(views, DeconvolutionConfig(block_size=(8, 8, 8)), init)

        assert not decon.init_was_successful()
        decon.run_iterations()
        assert decon.it == 0
        decon.shutdown()

    def test_view_without_blocks(self, service):
        image = np.ones((10, 10, 10), dtype=np.float32)
        views = make_views(service, [image], [None], [gaussian_kernel(5)], block_size=(8, 8, 8))

        decon = create_deconvolution(views, DeconvolutionConfig(block_size=(8, 8, 8)))

        assert not decon.init_was_successful()
        decon.run_iterations()
        assert decon.it == 0
        decon.shutdown()

    def test_out_of_memory(self, views, monkeypatch):
        def exhausted(self):
            raise MemoryError()

        monkeypatch.setattr(MultiViewDeconvolutionSeq, "run_next_iteration", exhausted)
        decon = create_deconvolution(views, DeconvolutionConfig(block_size=(8, 8, 8)))

        with pytest.raises(DeconvolutionMemoryError, match="block size"):
            decon.run_iterations()
        assert decon.get_psi() is None


class TestDebugStack:
    def test_snapshots_every_interval(self, service, tmp_path):
        image = np.random.default_rng(4).uniform(1.0, 5.0, (8, 10, 12)).astype(np.float32)
        views = make_views(service, [image], [None], [gaussian_kernel(3)])
        config = DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=5, debug=True, debug_interval=2)

        decon = run(views, config)
        stack = decon.get_debug_stack()

        assert len(stack) == 3
        assert stack.labels == ["Iteration 0", "Iteration 2", "Iteration 4"]

        path = tmp_path / "debug.tif"
        stack.save(path)
        saved = tifffile.imread(str(path))
        assert saved.shape == (3, 8, 10, 12)
        np.testing.assert_allclose(saved[-1], stack.snapshots[-1])

    def test_disabled_by_default(self, service):
        image = np.ones((8, 8, 8), dtype=np.float32)
        views = make_views(service, [image], [None], [gaussian_kernel(3)])

        decon = run(views, DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=2))

        assert decon.get_debug_stack() is None

    def test_enabled_at_runtime(self, service):
        image = np.ones((8, 8, 8), dtype=np.float32)
        views = make_views(service, [image], [None], [gaussian_kernel(3)])
        decon = create_deconvolution(views, DeconvolutionConfig(block_size=(8, 8, 8), num_iterations=3))

        decon.set_debug(True)
        decon.set_debug_interval(1)
        decon.run_iterations()

        assert len(decon.get_debug_stack()) == 3


class TestWriteBackQueue:
    def test_pastes_in_order_and_empties(self):
        block_a = Block((0, 0, 0), (2, 2, 2), (-1, -1, -1), (4, 4, 4))
        block_b = Block((0, 0, 2), (2, 2, 2), (-1, -1, 1), (4, 4, 4))
        psi = np.zeros((2, 2, 4), dtype=np.float32)

        queue = WriteBackQueue()
        queue.add(0, block_a, np.full((4, 4, 4), 1.0, np.float32))
        queue.extend([(1, block_b, np.full((4, 4, 4), 2.0, np.float32))])
        assert len(queue) == 2
        assert [item[0] for item in queue] == [0, 1]

        queue.write_back(psi)

        assert len(queue) == 0
        np.testing.assert_array_equal(psi[..., :2], 1.0)
        np.testing.assert_array_equal(psi[..., 2:], 2.0)
