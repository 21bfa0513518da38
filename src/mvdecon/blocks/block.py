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

"""Block descriptors and the copy/paste operations between blocks and volumes."""

# Standard Library Imports
from dataclasses import dataclass
from typing import Optional, Tuple

# Third Party Imports
import numpy as np

# Local Imports


def mirror_indices(start: int, length: int, size: int) -> np.ndarray:
    """Indices of a 1D range into an axis of ``size`` with single mirroring.

    Out-of-bounds positions are reflected without repeating the border
    pixel, e.g. ``... c b | a b c | b a ...``.

    Parameters
    ----------
    start : int
        First position, may be negative.
    length : int
        Number of positions.
    size : int
        Length of the axis that is read from.

    Returns
    -------
    np.ndarray
        Valid indices in ``[0, size)``.
    """
    positions = np.arange(start, start + length)
    if size == 1:
        return np.zeros(length, dtype=np.intp)

    period = 2 * size - 2
    positions = np.mod(positions, period)
    return np.where(positions >= size, period - positions, positions).astype(np.intp)


@dataclass(frozen=True)
class Block:
    """An axis-aligned region of a volume processed by one worker at a time.

    The nominal region (``offset``, ``size``) is the part of the volume the
    block is responsible for; nominal regions of all blocks tile the volume.
    The effective region (``effective_offset``, ``effective_size``) is the
    nominal region expanded by the support of the two successive
    convolutions. It is what gets copied into the worker's buffer and may
    extend beyond the volume.
    """

    offset: Tuple[int, ...]
    size: Tuple[int, ...]
    effective_offset: Tuple[int, ...]
    effective_size: Tuple[int, ...]
    grid_position: Tuple[int, ...] = ()

    @property
    def num_dimensions(self) -> int:
        return len(self.size)

    @property
    def min(self) -> Tuple[int, ...]:
        """Inclusive minimum of the nominal region."""
        return self.offset

    @property
    def max(self) -> Tuple[int, ...]:
        """Inclusive maximum of the nominal region."""
        return tuple(o + s - 1 for o, s in zip(self.offset, self.size))

    @property
    def effective_max(self) -> Tuple[int, ...]:
        return tuple(
            o + s - 1 for o, s in zip(self.effective_offset, self.effective_size)
        )

    @property
    def local_offset(self) -> Tuple[int, ...]:
        """Position of the nominal region inside the block buffer."""
        return tuple(o - e for o, e in zip(self.offset, self.effective_offset))

    @property
    def num_pixels(self) -> int:
        return int(np.prod(self.size))

    def nominal_slices(self) -> Tuple[slice, ...]:
        """Slices of the nominal region in volume coordinates."""
        return tuple(slice(o, o + s) for o, s in zip(self.offset, self.size))

    def local_slices(self) -> Tuple[slice, ...]:
        """Slices of the nominal region in block buffer coordinates."""
        return tuple(slice(o, o + s) for o, s in zip(self.local_offset, self.size))

    def overlaps(self, other: "Block") -> bool:
        """Whether the effective regions of two blocks intersect."""
        for d in range(self.num_dimensions):
            if self.effective_offset[d] > other.effective_max[d]:
                return False
            if other.effective_offset[d] > self.effective_max[d]:
                return False
        return True

    def is_inside(self, shape: Tuple[int, ...]) -> bool:
        """Whether the effective region lies completely inside ``shape``."""
        return all(
            e >= 0 and e + s <= n
            for e, s, n in zip(self.effective_offset, self.effective_size, shape)
        )

    def effective_slices(self) -> Tuple[slice, ...]:
        """Slices of the effective region in image coordinates."""
        return tuple(
            slice(e, e + s) for e, s in zip(self.effective_offset, self.effective_size)
        )

    def copy_block(self, source: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Copy the effective region of ``source`` into ``out``.

        Reads outside of ``source`` are mirrored.

        Parameters
        ----------
        source : np.ndarray
            The volume to read from, typically the deconvolved image.
        out : np.ndarray, optional
            Buffer of shape ``effective_size``. Allocated if None.

        Returns
        -------
        np.ndarray
            The filled buffer.
        """
        if out is None:
            out = np.empty(self.effective_size, dtype=source.dtype)

        if self.is_inside(source.shape):
            np.copyto(out, source[self.effective_slices()])
        else:
            indices = [
                mirror_indices(e, s, n)
                for e, s, n in zip(self.effective_offset, self.effective_size, source.shape)
            ]
            out[...] = source[np.ix_(*indices)]

        return out

    def paste_block(self, target: np.ndarray, buffer: np.ndarray) -> None:
        """Write the nominal region of ``buffer`` into ``target``."""
        target[self.nominal_slices()] = buffer[self.local_slices()]

    def crop_zero(
        self, source: np.ndarray, out: Optional[np.ndarray] = None, dtype=np.float32
    ) -> np.ndarray:
        """Return the effective region of ``source``, zero outside of it.

        ``out`` is cleared and reused if given.
        """
        if out is None:
            out = np.zeros(self.effective_size, dtype=dtype)
        else:
            out.fill(0)

        src, dst = [], []
        for e, s, n in zip(self.effective_offset, self.effective_size, source.shape):
            lo = max(e, 0)
            hi = min(e + s, n)
            if hi <= lo:
                return out
            src.append(slice(lo, hi))
            dst.append(slice(lo - e, hi - e))

        out[tuple(dst)] = source[tuple(src)]
        return out

    def __str__(self) -> str:
        return f"Block(min={self.min}, max={self.max}, effective={self.effective_size})"
