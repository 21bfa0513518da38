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
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Type, Union
import logging

# Third Party Imports
import numpy as np
import dask.array as da
import tifffile
import zarr
import h5py

# Local Imports

ArrayLike = Union["np.ndarray", "da.Array"]  # noqa: F821

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class RasterInfo:
    path: Path
    shape: Tuple[int, ...]
    dtype: Any
    axes: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class RasterReader(ABC):
    """Abstract strategy for opening an image, weight, or PSF raster."""

    # file suffixes this reader *typically* supports
    SUFFIXES: Tuple[str, ...] = ()

    @classmethod
    def claims(cls, path: Path) -> bool:
        """Lightweight test: usually just extension check; may be overridden."""
        return path.suffix.lower() in cls.SUFFIXES

    @abstractmethod
    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        chunks: Optional[Union[int, Tuple[int, ...]]] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, RasterInfo]:
        """Return array (NumPy or Dask) and RasterInfo."""


class TiffReader(RasterReader):
    """Reader for TIFF/OME-TIFF files using tifffile."""

    SUFFIXES = (".tif", ".tiff")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        chunks: Optional[Union[int, Tuple[int, ...]]] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, RasterInfo]:
        """Open a TIFF/OME-TIFF file.

        Parameters
        ----------
        path : Path
            The path to the TIFF file.
        prefer_dask : bool, optional
            If True, return a lazy Dask array. Defaults to False.
        chunks : int or tuple of int, optional
            Chunk size for Dask arrays. Ignored if `prefer_dask` is False.
        **kwargs : dict
            Unused.

        Returns
        -------
        arr : np.ndarray or dask.array.Array
            The raster.
        info : RasterInfo
            Metadata about the raster.
        """
        with tifffile.TiffFile(str(path)) as tf:
            axes = tf.series[0].axes if tf.series else None

        if prefer_dask:
            store = tifffile.imread(str(path), aszarr=True)
            darr = da.from_zarr(store, chunks=chunks) if chunks else da.from_zarr(store)
            info = RasterInfo(path=path, shape=tuple(darr.shape), dtype=darr.dtype, axes=axes)
            logger.info(f"Loaded {path.name} as a Dask array.")
            return darr, info

        arr = tifffile.imread(str(path))
        info = RasterInfo(path=path, shape=tuple(arr.shape), dtype=arr.dtype, axes=axes)
        logger.info(f"Loaded {path.name} as NumPy array.")
        return arr, info


class ZarrReader(RasterReader):
    """Reader for Zarr and N5 containers; picks the largest array."""

    SUFFIXES = (".zarr", ".n5")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        chunks: Optional[Union[int, Tuple[int, ...]]] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, RasterInfo]:
        node = zarr.open(str(path), mode="r")

        if isinstance(node, zarr.Array):
            arrays = [node]
        else:
            arrays = [node[k] for k in node.array_keys()]

        if not arrays:
            logger.error(f"No arrays found in Zarr group: {path}")
            raise ValueError(f"No arrays found in Zarr group: {path}")

        # Highest resolution = largest number of elements
        array = max(arrays, key=lambda arr: int(np.prod(arr.shape)))

        meta = dict(getattr(array, "attrs", {}))
        axes = meta.get("axes")

        if prefer_dask:
            darr = da.from_zarr(array, chunks=chunks) if chunks else da.from_zarr(array)
            logger.info(f"Loaded {path.name} as a Dask array.")
            return darr, RasterInfo(path=path, shape=tuple(darr.shape), dtype=darr.dtype, axes=axes, metadata=meta)

        np_arr = np.asarray(array[...])
        logger.info(f"Loaded {path.name} as a NumPy array.")
        return np_arr, RasterInfo(path=path, shape=tuple(np_arr.shape), dtype=np_arr.dtype, axes=axes, metadata=meta)


class HDF5Reader(RasterReader):
    """Reader for HDF5 files using h5py; picks the largest dataset."""

    SUFFIXES = (".h5", ".hdf5", ".hdf")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        chunks: Optional[Union[int, Tuple[int, ...]]] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, RasterInfo]:
        path_str = str(path).rstrip(os.sep)
        f = h5py.File(path_str, mode="r")

        def _collect_datasets(group: h5py.Group) -> list:
            out = []
            for _, obj in group.items():
                if isinstance(obj, h5py.Dataset):
                    out.append(obj)
                elif isinstance(obj, h5py.Group):
                    out.extend(_collect_datasets(obj))
            return out

        datasets = _collect_datasets(f)
        if not datasets:
            logger.error(f"No datasets found in HDF5 file: {path_str}")
            f.close()
            raise ValueError(f"No datasets found in HDF5 file: {path_str}")

        ds = max(datasets, key=lambda d: int(np.prod(d.shape)))
        meta: Dict[str, Any] = dict(ds.attrs)
        axes = meta.get("axes") or meta.get("DimensionOrder")

        if prefer_dask:
            eff_chunks = chunks or ds.chunks or tuple(min(128, s) for s in ds.shape)
            darr = da.from_array(
                ds,
                chunks=eff_chunks,
                name=f"h5::{os.path.basename(path_str)}::{ds.name}",
                lock=True,
            )
            logger.info(f"Loaded {Path(path_str).name} (HDF5) as Dask array from dataset '{ds.name}'.")
            return darr, RasterInfo(path=Path(path_str), shape=tuple(darr.shape), dtype=darr.dtype, axes=axes, metadata=meta)

        np_arr = ds[...]
        f.close()
        logger.info(f"Loaded {Path(path_str).name} (HDF5) as NumPy array from dataset '{ds.name}'.")
        return np_arr, RasterInfo(path=Path(path_str), shape=tuple(np_arr.shape), dtype=np_arr.dtype, axes=axes, metadata=meta)


class NumpyReader(RasterReader):
    SUFFIXES = (".npy", ".npz")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        chunks: Optional[Union[int, Tuple[int, ...]]] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, RasterInfo]:
        metadata: Dict[str, Any] = {}
        if path.suffix.lower() == ".npy":
            arr = np.load(str(path), mmap_mode="r" if prefer_dask else None)
        else:
            npz = np.load(str(path))
            first_key = list(npz.keys())[0]
            arr = npz[first_key]
            metadata["npz_key"] = first_key

        if prefer_dask:
            arr = da.from_array(arr, chunks=chunks or "auto")
        return arr, RasterInfo(path=path, shape=tuple(arr.shape), dtype=arr.dtype, metadata=metadata)


class RasterOpener:
    """Open a raster with the first reader that claims it."""

    def __init__(self, readers: Optional[Iterable[Type[RasterReader]]] = None) -> None:
        # Registry order is priority order
        self._readers: Tuple[Type[RasterReader], ...] = tuple(
            readers or (TiffReader, ZarrReader, NumpyReader, HDF5Reader)
        )

    def open(
        self,
        path: Union[str, os.PathLike],
        prefer_dask: bool = False,
        chunks: Optional[Union[int, Tuple[int, ...]]] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, RasterInfo]:
        """Open a raster with the appropriate reader.

        Parameters
        ----------
        path : str or os.PathLike
            Path to the file or directory.
        prefer_dask : bool, optional
            If True, return a Dask array when possible.
        chunks : int or tuple of int, optional
            Chunk size for Dask arrays.
        **kwargs : dict
            Passed to the reader's `open` method.

        Returns
        -------
        arr : np.ndarray or dask.array.Array
            The raster.
        info : RasterInfo
            Metadata about the raster.

        Raises
        ------
        FileNotFoundError
            If the specified path does not exist.
        ValueError
            If no reader can open the file.
        """
        p = Path(path)
        if not p.exists():
            logger.error(f"File {p} does not exist")
            raise FileNotFoundError(p)

        logger.info(f"Opening {p}")
        for reader_cls in self._readers:
            if reader_cls.claims(p):
                logger.info(f"Using reader: {reader_cls.__name__}.")
                return reader_cls().open(p, prefer_dask=prefer_dask, chunks=chunks, **kwargs)

        # Fallback: probe readers that didn't claim the file
        logger.info(f"No reader claims {p}. Attempting fallback readers.")
        for reader_cls in self._readers:
            try:
                return reader_cls().open(p, prefer_dask=prefer_dask, chunks=chunks, **kwargs)
            except Exception as e:
                logger.debug(f"{reader_cls.__name__} cannot open {p}: {e}")
                continue

        logger.error(f"No suitable reader found for {p}")
        raise ValueError(f"No suitable reader found for: {p}")


def read_volume(path: Union[str, os.PathLike], ndim: int = 3) -> np.ndarray:
    """Load a raster as float32 NumPy array with singleton axes removed.

    Raises
    ------
    ValueError
        If the squeezed raster does not have ``ndim`` dimensions.
    """
    arr, info = RasterOpener().open(path)
    arr = np.squeeze(np.asarray(arr))
    if arr.ndim != ndim:
        raise ValueError(f"Expected a {ndim}D raster in {info.path}, got shape {info.shape}")
    return np.asarray(arr, dtype=np.float32)
