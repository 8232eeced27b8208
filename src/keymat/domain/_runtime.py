"""
Accelerator runtime interface definitions.

The device runtime is the external collaborator that knows how to talk to an
accelerator: how many devices exist, what each one can do, which array and
sparse modules operate on its memory, and how to copy payloads between host
and device memory.

The matrix facade and the device arbitrator depend only on this protocol.
Concrete runtimes live in the infrastructure layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ContextManager, Protocol, runtime_checkable


@dataclass(frozen=True)
class DeviceCapability:
    """
    Result of probing one accelerator.

    Attributes
    ----------
    index : int
        Device index.
    name : str
        Human-readable device name.
    compute_capability : tuple[int, int]
        (major, minor) capability of the device.
    total_memory : int
        Total device memory in bytes.
    free_memory : int
        Free device memory in bytes at probe time.
    """

    index: int
    name: str
    compute_capability: tuple[int, int]
    total_memory: int
    free_memory: int

    def satisfies(self, min_compute_capability: tuple[int, int], min_free_memory: int) -> bool:
        """Check this device against minimum capability and free memory."""
        return (
            tuple(self.compute_capability) >= tuple(min_compute_capability)
            and int(self.free_memory) >= int(min_free_memory)
        )


@runtime_checkable
class IDeviceRuntime(Protocol):
    """
    Accelerator runtime contract.

    Notes
    -----
    - `probe` raises `DeviceUnavailableError` when a device cannot be queried
      or initialized.
    - Transfers are synchronous from the caller's point of view: `to_device`
      and `to_host` return only after the copy is complete.
    """

    name: str

    def device_count(self) -> int:
        """Number of visible accelerators (0 if none or the driver is missing)."""
        ...

    def probe(self, device_index: int) -> DeviceCapability:
        """Query one accelerator."""
        ...

    def array_module(self, device_index: int) -> Any:
        """NumPy-compatible module operating on device arrays."""
        ...

    def sparse_module(self, device_index: int) -> Any:
        """`scipy.sparse`-compatible module operating on device arrays."""
        ...

    def use_device(self, device_index: int) -> ContextManager[Any]:
        """Context manager selecting `device_index` as the current device."""
        ...

    def to_device(self, host_array: Any, device_index: int) -> Any:
        """Copy a host array into device memory."""
        ...

    def to_host(self, device_array: Any) -> Any:
        """Copy a device array into a host NumPy array."""
        ...

    def copy_to_device(self, device_array: Any, device_index: int) -> Any:
        """Copy a device array onto another device."""
        ...

    def synchronize(self, device_index: int) -> None:
        """Drain the device work queue."""
        ...
