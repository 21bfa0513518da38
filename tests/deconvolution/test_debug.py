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

import os
import tempfile
import unittest

import numpy as np
import tifffile

from mvdecon.deconvolution.debug import DebugStack


class TestDebugStackSnapshots(unittest.TestCase):
    def test_snapshot_is_a_copy(self):
        psi = np.ones((2, 3, 4), dtype=np.float32)
        stack = DebugStack()
        stack.add(psi, "Iteration 0")
        psi[...] = 5.0
        self.assertEqual(len(stack), 1)
        self.assertTrue(np.all(stack.snapshots[0] == 1.0))

    def test_as_array(self):
        stack = DebugStack()
        for it in range(3):
            stack.add(np.full((2, 3, 4), it, dtype=np.float64), f"Iteration {it}")
        arr = stack.as_array()
        self.assertEqual(arr.shape, (3, 2, 3, 4))
        self.assertEqual(arr.dtype, np.float32)
        self.assertEqual(stack.labels, ["Iteration 0", "Iteration 1", "Iteration 2"])


class TestDebugStackSave(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.test_file_path = os.path.join(self.tmp_dir.name, "debug.tif")

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_save(self):
        stack = DebugStack()
        stack.add(np.zeros((2, 3, 4), dtype=np.float32), "Iteration 0")
        stack.add(np.ones((2, 3, 4), dtype=np.float32), "Iteration 1")
        stack.save(self.test_file_path)
        self.assertTrue(os.path.exists(self.test_file_path))
        saved = tifffile.imread(self.test_file_path)
        self.assertEqual(saved.shape, (2, 2, 3, 4))
        self.assertTrue(np.all(saved[1] == 1.0))

    def test_save_empty_stack(self):
        DebugStack().save(self.test_file_path)
        self.assertFalse(os.path.exists(self.test_file_path))
