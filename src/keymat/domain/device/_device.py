"""
Device abstraction utilities.

This module defines lightweight abstractions for representing placement
targets for matrix storage. It provides:

- `DeviceType`: an enumeration of placement categories
- `Device`: a concrete descriptor that validates and normalizes user-facing
  device strings such as "cpu", "cuda:0" or "auto"
- integer sentinels `CPUDEVICE` and `AUTOPLACEMATRIX` for callers that work
  with numeric device ids

The design avoids backend-specific dependencies and is shared by the domain
and infrastructure layers.
"""

from __future__ import annotations

from enum import Enum
from typing import Union
import re

from ._device_protocol import DeviceLike

CPUDEVICE = -1
"""Numeric id of the host. Any negative id is treated as the host."""

AUTOPLACEMATRIX = 1000
"""Numeric id of the auto-placement sentinel."""


class DeviceType(Enum):
    """
    Enumeration of placement categories.

    Attributes
    ----------
    CPU : DeviceType
        Host memory.
    CUDA : DeviceType
        A concrete accelerator identified by a non-negative index.
    AUTO : DeviceType
        Auto-placement sentinel; the device arbitrator chooses.
    """

    CPU = "cpu"
    CUDA = "cuda"
    AUTO = "auto"


class Device:
    """
    Concrete placement descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be one of:
        - "cpu"
        - "cuda:<index>", where <index> is a non-negative integer
        - "auto"

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.

    Notes
    -----
    - `__slots__` is used to prevent dynamic attribute creation.
    - This class does not allocate or manage any backend resources.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        elif device == "auto":
            self.type = DeviceType.AUTO
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu', 'auto' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    @classmethod
    def from_id(cls, device_id: int) -> "Device":
        """
        Build a descriptor from a numeric device id.

        Negative ids map to the host, `AUTOPLACEMATRIX` maps to "auto" and any
        other non-negative id maps to "cuda:<id>".
        """
        device_id = int(device_id)
        if device_id < 0:
            return cls("cpu")
        if device_id == AUTOPLACEMATRIX:
            return cls("auto")
        return cls(f"cuda:{device_id}")

    @classmethod
    def coerce(cls, device: Union["Device", str, int, None]) -> "Device":
        """
        Normalize a placement request.

        Parameters
        ----------
        device : Device | DeviceLike | str | int | None
            A descriptor, a device string, a numeric id, or None (auto).
            Foreign device-like objects are rebuilt from their string form.

        Returns
        -------
        Device
            The normalized descriptor.
        """
        if device is None:
            return cls("auto")
        if isinstance(device, Device):
            return device
        if isinstance(device, bool):
            raise TypeError("device must be a Device, str or int, not bool")
        if isinstance(device, int):
            return cls.from_id(device)
        if isinstance(device, str):
            return cls(device)
        if isinstance(device, DeviceLike):
            return cls(str(device))
        raise TypeError(f"Unsupported device: {device!r}")

    @property
    def id(self) -> int:
        """Numeric id: `CPUDEVICE`, the accelerator index, or `AUTOPLACEMATRIX`."""
        if self.type is DeviceType.CPU:
            return CPUDEVICE
        if self.type is DeviceType.AUTO:
            return AUTOPLACEMATRIX
        return int(self.index)

    def __str__(self) -> str:
        if self.type is DeviceType.CUDA:
            return f"cuda:{self.index}"
        return self.type.value

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        """
        Compare two Device objects for semantic equality.

        Devices are equal if they have the same type and (for accelerators)
        the same index.
        """
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """True if this descriptor places data in host memory."""
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """True if this descriptor names a concrete accelerator."""
        return self.type is DeviceType.CUDA

    def is_auto(self) -> bool:
        """True if this is the auto-placement sentinel."""
        return self.type is DeviceType.AUTO
