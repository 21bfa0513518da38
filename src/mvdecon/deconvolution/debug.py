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
import os
from typing import List, Union

# Third Party Imports
import numpy as np
import tifffile

# Local Imports

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class DebugStack:
    """Copies of the deconvolved image taken during the iterations.

    Snapshots never feed back into the computation.
    """

    def __init__(self):
        self.snapshots: List[np.ndarray] = []
        self.labels: List[str] = []

    def add(self, psi: np.ndarray, label: str) -> None:
        self.snapshots.append(np.array(psi, dtype=np.float32, copy=True))
        self.labels.append(label)
        logger.debug(f"Recorded debug snapshot '{label}'.")

    def __len__(self) -> int:
        return len(self.snapshots)

    def as_array(self) -> np.ndarray:
        """All snapshots stacked along a new first axis."""
        return np.stack(self.snapshots)

    def save(self, path: Union[str, os.PathLike]) -> None:
        """Save the stack as ImageJ hyperstack (TZYX), one label per slice."""
        if len(self) == 0:
            logger.warning("No debug snapshots were recorded, nothing to save.")
            return

        stack = self.as_array()
        num_slices = stack.shape[1]
        slice_labels = [label for label in self.labels for _ in range(num_slices)]
        tifffile.imwrite(
            str(path),
            stack,
            imagej=True,
            metadata={"axes": "TZYX", "Labels": slice_labels},
        )
        logger.info(f"Saved {len(self)} debug snapshot(s) to {path}")
