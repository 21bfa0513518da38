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

"""Iterative multi-view deconvolution of a volume in batches of blocks.

The deconvolved image (PSI) is shared by all blocks. Blocks of one batch
have non-overlapping buffers and are computed concurrently, reading PSI
through a mirror extension. Their results are pasted into PSI only after
the next batch has been computed, which keeps the reads of one batch free
of partially written results.
"""

# Standard Library Imports
import itertools
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

# Third Party Imports
import numpy as np

# Local Imports
from mvdecon.blocks import Block
from mvdecon.config import ComputeType, DeconvolutionConfig
from mvdecon.deconvolution.debug import DebugStack
from mvdecon.deconvolution.init import PsiInit, create_psi_init
from mvdecon.deconvolution.iteration import (
    ComputeBlockMulThreadCPU,
    ComputeBlockMulThreadCPUFactory,
    ComputeBlockSeqThreadCPU,
    ComputeBlockSeqThreadCPUFactory,
    ComputeBlockThread,
    ComputeBlockThreadFactory,
    IterationStatistics,
)
from mvdecon.deconvolution.views import DeconViews
from mvdecon.errors import DeconvolutionConfigurationError, DeconvolutionMemoryError

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

QueuedBlock = Tuple[int, Block, np.ndarray]


class WriteBackQueue:
    """FIFO of computed blocks waiting to be pasted into PSI."""

    def __init__(self):
        self._items: List[QueuedBlock] = []

    def add(self, block_id: int, block: Block, buffer: np.ndarray) -> None:
        self._items.append((block_id, block, buffer))

    def extend(self, items: Sequence[QueuedBlock]) -> None:
        self._items.extend(items)

    def write_back(self, psi: np.ndarray) -> None:
        """Paste all queued blocks into ``psi`` in order and empty the queue."""
        for block_id, block, buffer in self._items:
            start = time.time()
            block.paste_block(psi, buffer)
            logger.debug(f" block {block_id}, paste {time.time() - start:.3f}s")
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)


class MultiViewDeconvolution(ABC):
    """Fixed-count Richardson-Lucy iterations over all views and blocks.

    Parameters
    ----------
    views : DeconViews
        The validated input views.
    config : DeconvolutionConfig
        Parameters of the run.
    psi_init : PsiInit, optional
        Initialization strategy. Selected from ``config`` if None.
    compute_block_factory : ComputeBlockThreadFactory, optional
        Creates the per-worker compute instances. Selected from ``config``
        if None.

    Attributes
    ----------
    max : np.ndarray or None
        Peak intensity of every view, None if the initialization failed.
    statistics : list of list of IterationStatistics
        Change statistics per iteration, one entry per view (sequential) or
        a single entry (simultaneous).
    block_statistics : list of IterationStatistics
        Statistics of every block of the most recent pass over a view.
    """

    def __init__(
        self,
        views: DeconViews,
        config: DeconvolutionConfig,
        psi_init: Optional[PsiInit] = None,
        compute_block_factory: Optional[ComputeBlockThreadFactory] = None,
    ):
        self.views = views
        self.config = config
        self.num_iterations = config.num_iterations
        self.it = 0

        self.debug = config.debug
        self.debug_interval = config.debug_interval
        self.debug_stack: Optional[DebugStack] = None

        self.statistics: List[List[IterationStatistics]] = []
        self.block_statistics: List[IterationStatistics] = []

        self.psi: Optional[np.ndarray] = np.zeros(views.psi_dimensions, dtype=np.float32)

        if compute_block_factory is None:
            compute_block_factory = self.create_compute_block_factory()

        logger.info(
            f"Setting up {compute_block_factory.num_parallel_blocks()} Block Thread(s), "
            f"using '{type(compute_block_factory).__name__}'"
        )
        self.compute_block_threads: List[ComputeBlockThread] = [
            compute_block_factory.create(i)
            for i in range(compute_block_factory.num_parallel_blocks())
        ]
        self.block_service = ThreadPoolExecutor(
            max_workers=len(self.compute_block_threads),
            thread_name_prefix="mvdecon-block",
        )

        self.max: Optional[np.ndarray] = None
        self.avg_max = 0.0

        for view in views.views:
            if view.num_blocks == -1:
                logger.error(f"View {view} could not be divided into blocks, stopping.")
                return

        if psi_init is None:
            psi_init = create_psi_init(config)

        logger.info(f"Running PSI initialization '{type(psi_init).__name__}'")
        if not psi_init.run_initialization(self.psi, views.views, views.service):
            logger.error("Initialization of the deconvolved image failed.")
            return

        max_values = np.array(psi_init.get_max(), dtype=np.float32)
        for i, value in enumerate(max_values):
            if not value > 0:
                logger.warning(
                    f"Max intensity of view {i} is {value}, not normalizing its regularization."
                )
                max_values[i] = 1.0
            logger.info(f"Max intensity in overlapping area of view {i}: {max_values[i]}")

        self.max = max_values
        self.avg_max = float(np.mean(max_values))

        # the quotient requires a strictly positive estimate
        np.maximum(self.psi, np.float32(config.min_value), out=self.psi)

    @abstractmethod
    def create_compute_block_factory(self) -> ComputeBlockThreadFactory:
        ...

    @abstractmethod
    def run_next_iteration(self) -> None:
        """Run one pass over all views and increment ``it``."""

    def init_was_successful(self) -> bool:
        return self.max is not None

    def get_psi(self) -> Optional[np.ndarray]:
        return self.psi

    def set_debug(self, debug: bool) -> None:
        self.debug = debug

    def set_debug_interval(self, debug_interval: int) -> None:
        self.debug_interval = debug_interval

    def get_debug_stack(self) -> Optional[DebugStack]:
        return self.debug_stack

    def run_iterations(self) -> None:
        """Run the remaining iterations. No-op if the initialization failed.

        Raises
        ------
        DeconvolutionMemoryError
            If a block ran out of memory. PSI is discarded in that case.
        """
        if not self.init_was_successful():
            return

        try:
            while self.it < self.num_iterations:
                if self.debug and self.it % self.debug_interval == 0:
                    if self.debug_stack is None:
                        self.debug_stack = DebugStack()
                    self.debug_stack.add(self.psi, f"Iteration {self.it}")

                self.run_next_iteration()
        except MemoryError as e:
            logger.error(
                "Out of memory. Reduce the block size or the number of parallel "
                "blocks, or increase the available memory."
            )
            self.shutdown(wait=False)
            self.psi = None
            raise DeconvolutionMemoryError() from e

        self.shutdown()
        logger.info("DONE.")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the block workers and, after a failure, the shared pool."""
        self.block_service.shutdown(wait=wait)
        if not wait:
            self.views.service.shutdown(wait=False)

    def process_batch(
        self,
        batch: Sequence[Block],
        num_blocks_before: int,
        total_num_blocks: int,
        compute: Callable[[ComputeBlockThread, Block], IterationStatistics],
    ) -> Tuple[List[IterationStatistics], List[QueuedBlock]]:
        """Compute all blocks of one batch concurrently.

        Workers pull block indices from a shared counter. Results are
        pasted directly only if the view consists of a single block;
        otherwise copies are returned for the write-back queue.

        Parameters
        ----------
        batch : sequence of Block
            Non-interfering blocks.
        num_blocks_before : int
            Number of blocks in earlier batches, for logging.
        total_num_blocks : int
            Number of blocks of the whole view.
        compute : callable
            Runs the update of one block on a compute instance whose
            ``psi_block_tmp`` holds the block.

        Returns
        -------
        tuple
            Statistics of every block and the blocks to write back.
        """
        counter = itertools.count()
        num_threads = len(self.compute_block_threads)

        def worker(thread_id: int):
            block_thread = self.compute_block_threads[thread_id]
            stats, queued = [], []

            while True:
                block_id = next(counter)
                if block_id >= len(batch):
                    break

                block = batch[block_id]
                block_id_out = block_id + num_blocks_before

                start = time.time()
                block.copy_block(self.psi, block_thread.psi_block_tmp)
                logger.debug(
                    f" block {block_id_out}, thread ({thread_id + 1}/{num_threads}), "
                    f"copy {time.time() - start:.3f}s"
                )

                start = time.time()
                stats.append(compute(block_thread, block))
                logger.debug(
                    f" block {block_id_out}, thread ({thread_id + 1}/{num_threads}), "
                    f"compute {time.time() - start:.3f}s"
                )

                if total_num_blocks == 1:
                    block.paste_block(self.psi, block_thread.psi_block_tmp)
                else:
                    queued.append((block_id_out, block, block_thread.psi_block_tmp.copy()))

            return stats, queued

        futures = [self.block_service.submit(worker, t) for t in range(num_threads)]

        stats: List[IterationStatistics] = []
        queued: List[QueuedBlock] = []
        for future in futures:
            s, q = future.result()
            stats.extend(s)
            queued.extend(q)

        # deterministic paste order, independent of thread scheduling
        queued.sort(key=lambda item: item[0])
        return stats, queued

    def process_batches(
        self,
        batches: Sequence[Sequence[Block]],
        total_num_blocks: int,
        compute: Callable[[ComputeBlockThread, Block], IterationStatistics],
    ) -> IterationStatistics:
        """Process batches in order, writing each one back one batch late."""
        previous = WriteBackQueue()
        self.block_statistics = []
        num_blocks_before = 0

        for batch_index, batch in enumerate(batches):
            logger.debug(
                f"Processing {len(batch)} blocks from batch {batch_index + 1}/{len(batches)}"
            )
            stats, queued = self.process_batch(batch, num_blocks_before, total_num_blocks, compute)
            num_blocks_before += len(batch)
            self.block_statistics.extend(stats)

            previous.write_back(self.psi)
            previous.extend(queued)

        previous.write_back(self.psi)
        return IterationStatistics.aggregate(self.block_statistics)


class MultiViewDeconvolutionSeq(MultiViewDeconvolution):
    """Updates PSI with one view after another."""

    def create_compute_block_factory(self) -> ComputeBlockThreadFactory:
        return ComputeBlockSeqThreadCPUFactory(
            self.views.block_size,
            self.config.min_value,
            self.config.lambda_,
            self.config.num_parallel_blocks,
        )

    def run_next_iteration(self) -> None:
        if self.max is None:
            return

        self.it += 1
        logger.info(f"iteration: {self.it}")

        iteration_stats = []
        for v, view in enumerate(self.views.views):
            max_intensity = float(self.max[v])

            def compute(block_thread: ComputeBlockSeqThreadCPU, block: Block, view=view, max_intensity=max_intensity):
                return block_thread.run_iteration(
                    view,
                    block,
                    block_thread.crop_view(block, view.image, block_thread.img_block_tmp),
                    block_thread.crop_view(block, view.weight, block_thread.weight_block_tmp),
                    max_intensity,
                )

            stats = self.process_batches(view.non_interfering_blocks, view.num_blocks, compute)
            iteration_stats.append(stats)

            name = f" [{view}]" if view.title is not None else ""
            logger.info(
                f"iteration: {self.it}, view: {v}{name} --- sum change: "
                f"{stats.sum_change} --- max change per pixel: {stats.max_change}"
            )

        self.statistics.append(iteration_stats)


class MultiViewDeconvolutionMul(MultiViewDeconvolution):
    """Updates PSI with the combined correction of all views per block.

    All views must share the same block structure.
    """

    def create_compute_block_factory(self) -> ComputeBlockThreadFactory:
        return ComputeBlockMulThreadCPUFactory(
            self.views.block_size,
            self.config.min_value,
            self.config.lambda_,
            len(self.views),
            self.config.num_parallel_blocks,
        )

    _block_integrity: Optional[bool] = None

    def init_was_successful(self) -> bool:
        return self.max is not None and self.test_block_integrity()

    def test_block_integrity(self) -> bool:
        """Whether all views have identical blocks in identical batches.

        The blocks are fixed after construction, so the scan runs once.
        """
        if self._block_integrity is None:
            self._block_integrity = self._check_block_integrity()
        return self._block_integrity

    def _check_block_integrity(self) -> bool:
        first = self.views.views[0]
        total_num_blocks = first.num_blocks
        batches = first.non_interfering_blocks

        for view in self.views.views:
            if view.num_blocks != total_num_blocks:
                logger.error("only a constant number of blocks is supported.")
                return False

            if batches is None or view.non_interfering_blocks is None:
                logger.error("views without blocks are not supported.")
                return False

            if len(view.non_interfering_blocks) != len(batches):
                logger.error("only a constant number of block batches is supported.")
                return False

            for batch_a, batch_b in zip(batches, view.non_interfering_blocks):
                if len(batch_a) != len(batch_b):
                    logger.error("only a constant number of blocks within batches is supported.")
                    return False

                for block_a, block_b in zip(batch_a, batch_b):
                    if (
                        block_a.size != block_b.size
                        or block_a.effective_size != block_b.effective_size
                        or block_a.min != block_b.min
                        or block_a.max != block_b.max
                    ):
                        logger.error(
                            "Block dimensions/offset/effective sizes not compatible, stopping."
                        )
                        return False

        return True

    def run_next_iteration(self) -> None:
        if self.max is None:
            return

        self.it += 1
        logger.info(f"iteration: {self.it}")

        views = self.views.views
        max_intensity = self.avg_max

        def compute(block_thread: ComputeBlockMulThreadCPU, block: Block):
            return block_thread.run_iteration(
                views,
                block,
                [
                    block_thread.crop_view(block, view.image, out)
                    for view, out in zip(views, block_thread.img_block_tmp)
                ],
                [
                    block_thread.crop_view(block, view.weight, out)
                    for view, out in zip(views, block_thread.weight_block_tmp)
                ],
                max_intensity,
            )

        stats = self.process_batches(views[0].non_interfering_blocks, views[0].num_blocks, compute)
        self.statistics.append([stats])

        logger.info(
            f"iteration: {self.it} --- sum change: {stats.sum_change} "
            f"--- max change per pixel: {stats.max_change}"
        )


def create_deconvolution(
    views: DeconViews,
    config: DeconvolutionConfig,
    psi_init: Optional[PsiInit] = None,
) -> MultiViewDeconvolution:
    """Create the orchestrator selected by ``config.compute_type``.

    Raises
    ------
    DeconvolutionConfigurationError
        If the simultaneous update is requested for views whose block
        structures differ.
    """
    if config.compute_type == ComputeType.SIMULTANEOUS:
        decon = MultiViewDeconvolutionMul(views, config, psi_init)
        has_blocks = all(view.num_blocks != -1 for view in views.views)
        if has_blocks and not decon.test_block_integrity():
            decon.shutdown()
            raise DeconvolutionConfigurationError(
                "Simultaneous deconvolution requires identical blocks for all views; "
                "use identical PSF sizes and disable filtering blocks for content."
            )
        return decon

    return MultiViewDeconvolutionSeq(views, config, psi_init)
