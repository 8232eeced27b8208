"""
CuPy-backed accelerator runtime.

`CupyRuntime` implements `IDeviceRuntime` on top of CuPy and
`cupyx.scipy.sparse`. CuPy is an optional dependency (the `cuda` extra): when
it cannot be imported the runtime reports zero devices and every probe raises
`DeviceUnavailableError`, so the device arbitrator places everything on the
host.
"""

from __future__ import annotations

import logging
from typing import Any, ContextManager

from ...domain._errors import DeviceUnavailableError
from ...domain._runtime import DeviceCapability

try:
    import cupy as cp
    import cupyx.scipy.sparse as cpx_sparse

    HAS_CUPY = True
except ImportError:
    cp = None
    cpx_sparse = None
    HAS_CUPY = False

logger = logging.getLogger(__name__)


class CupyRuntime:
    """
    Accelerator runtime using CuPy.

    Notes
    -----
    Every transfer synchronizes the target device before returning, so the
    facade never observes a copy that is still in flight.
    """

    name = "cupy"

    @property
    def available(self) -> bool:
        """True if CuPy could be imported."""
        return HAS_CUPY

    def device_count(self) -> int:
        if not HAS_CUPY:
            return 0
        try:
            return int(cp.cuda.runtime.getDeviceCount())
        except cp.cuda.runtime.CUDARuntimeError as e:
            logger.warning("CUDA device enumeration failed: %s", e)
            return 0

    def probe(self, device_index: int) -> DeviceCapability:
        if not HAS_CUPY:
            raise DeviceUnavailableError(device_index, "CuPy is not installed")
        try:
            props = cp.cuda.runtime.getDeviceProperties(device_index)
            with cp.cuda.Device(device_index):
                free, total = cp.cuda.runtime.memGetInfo()
        except (cp.cuda.runtime.CUDARuntimeError, RuntimeError) as e:
            raise DeviceUnavailableError(device_index, str(e)) from e

        name = props.get("name", b"")
        if isinstance(name, bytes):
            name = name.decode("utf-8", errors="replace")
        return DeviceCapability(
            index=int(device_index),
            name=str(name),
            compute_capability=(int(props["major"]), int(props["minor"])),
            total_memory=int(total),
            free_memory=int(free),
        )

    def _require(self) -> None:
        if not HAS_CUPY:
            raise RuntimeError("CupyRuntime requires CuPy (pip install keymat[cuda])")

    def array_module(self, device_index: int) -> Any:
        self._require()
        return cp

    def sparse_module(self, device_index: int) -> Any:
        self._require()
        return cpx_sparse

    def use_device(self, device_index: int) -> ContextManager[Any]:
        self._require()
        return cp.cuda.Device(device_index)

    def to_device(self, host_array: Any, device_index: int) -> Any:
        self._require()
        with cp.cuda.Device(device_index) as dev:
            out = cp.asarray(host_array)
            dev.synchronize()
        return out

    def to_host(self, device_array: Any) -> Any:
        self._require()
        return cp.asnumpy(device_array)

    def copy_to_device(self, device_array: Any, device_index: int) -> Any:
        self._require()
        with cp.cuda.Device(device_index) as dev:
            out = cp.empty_like(device_array)
            out.data.copy_from_device(device_array.data, device_array.nbytes)
            dev.synchronize()
        return out

    def synchronize(self, device_index: int) -> None:
        self._require()
        cp.cuda.Device(device_index).synchronize()
