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
import itertools
import logging
import math

# Third Party Imports
import pytest

# Local Imports
from mvdecon.blocks.generator import block_step, divide_into_blocks
from mvdecon.blocks.sorter import batch_strides, sort_blocks_by_smallest_footprint


CASES = [
    ((20, 24, 18), (9, 9, 9), (16, 16, 16)),
    ((64, 33, 17), (5, 5, 5), (12, 16, 8)),
    ((10, 10, 10), (1, 1, 1), (4, 4, 4)),
    ((40, 40, 40), (3, 3, 3), (8, 8, 8)),
    ((7, 5, 9), (5, 3, 1), (20, 12, 10)),
]


class TestSortBlocks:
    """Test suite for grouping blocks into non-interfering batches."""

    @pytest.mark.parametrize("img_size,kernel_size,block_size", CASES)
    def test_no_two_blocks_of_a_batch_overlap(self, img_size, kernel_size, block_size):
        blocks = divide_into_blocks(img_size, kernel_size, block_size)
        batches = sort_blocks_by_smallest_footprint(blocks, img_size)

        for batch in batches:
            for a, b in itertools.combinations(batch, 2):
                assert not a.overlaps(b)

    @pytest.mark.parametrize("img_size,kernel_size,block_size", CASES)
    def test_every_block_in_exactly_one_batch(self, img_size, kernel_size, block_size):
        blocks = divide_into_blocks(img_size, kernel_size, block_size)
        batches = sort_blocks_by_smallest_footprint(blocks, img_size)

        flattened = [block for batch in batches for block in batch]
        assert len(flattened) == len(blocks)
        assert set(flattened) == set(blocks)

    @pytest.mark.parametrize("img_size,kernel_size,block_size", CASES)
    def test_number_of_batches(self, img_size, kernel_size, block_size):
        blocks = divide_into_blocks(img_size, kernel_size, block_size)
        batches = sort_blocks_by_smallest_footprint(blocks, img_size)

        step = block_step(block_size, kernel_size)
        expected = 1
        for s, st, b in zip(img_size, step, block_size):
            grid = math.ceil(s / st)
            expected *= min(grid, math.ceil(b / st))
        assert len(batches) == expected

    def test_adjacent_buffers_need_two_colors(self):
        blocks = divide_into_blocks((40, 40, 40), (9, 9, 9), (16, 16, 16))
        assert batch_strides(blocks) == (2, 2, 2)
        assert len(sort_blocks_by_smallest_footprint(blocks, (40, 40, 40))) == 8

    def test_touching_buffers_share_a_batch(self):
        blocks = divide_into_blocks((10, 10, 10), (1, 1, 1), (4, 4, 4))
        batches = sort_blocks_by_smallest_footprint(blocks, (10, 10, 10))

        assert len(batches) == 1
        assert len(batches[0]) == 27

    def test_single_block(self):
        blocks = divide_into_blocks((5, 5, 5), (3, 3, 3), (16, 16, 16))
        batches = sort_blocks_by_smallest_footprint(blocks, (5, 5, 5))
        assert len(batches) == 1
        assert batches[0] == blocks

    def test_empty_input(self):
        assert sort_blocks_by_smallest_footprint([], (5, 5, 5)) == []

    def test_warns_when_batches_are_small(self, caplog):
        blocks = divide_into_blocks((20, 20, 20), (9, 9, 9), (16, 16, 16))

        with caplog.at_level(logging.WARNING, logger="mvdecon.blocks.sorter"):
            batches = sort_blocks_by_smallest_footprint(blocks, (20, 20, 20), min_required_blocks=4)

        assert min(len(b) for b in batches) < 4
        assert "fewer than the 4 requested" in caplog.text
