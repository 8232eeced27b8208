"""
KeyMat: one logical matrix over host/accelerator and dense/sparse storage.

A `Matrix` owns up to four backing buffers (host-dense, device-dense,
host-sparse, device-sparse) and keeps track of which of them is
authoritative. Operations resolve a device through the `DeviceArbitrator`,
move or convert data as needed, then run on NumPy/SciPy or CuPy.
"""

from .domain._errors import (
    CapacityExceededError,
    DeviceUnavailableError,
    InvalidStateError,
    MatrixError,
    MatrixTypeNotSupportedError,
    SerializationNameMismatchError,
    ShapeMismatchError,
    ViewInvalidatedError,
)
from .domain._runtime import DeviceCapability, IDeviceRuntime
from .domain._state import Location, MatrixFormat, MatrixType
from .domain.device import AUTOPLACEMATRIX, CPUDEVICE, Device
from .infrastructure._config import (
    MatrixConfig,
    get_default_arbitrator,
    set_default_arbitrator,
)
from .infrastructure.arbitration import DeviceArbitrator, PlacementKind, PlacementPolicy
from .infrastructure.matrix import Matrix
from .infrastructure.runtime import HAS_CUPY, CupyRuntime
from .infrastructure.serialization import read_matrix, write_matrix

__all__ = [
    "AUTOPLACEMATRIX",
    "CPUDEVICE",
    "CapacityExceededError",
    "CupyRuntime",
    "Device",
    "DeviceArbitrator",
    "DeviceCapability",
    "DeviceUnavailableError",
    "HAS_CUPY",
    "IDeviceRuntime",
    "InvalidStateError",
    "Location",
    "Matrix",
    "MatrixConfig",
    "MatrixError",
    "MatrixFormat",
    "MatrixType",
    "MatrixTypeNotSupportedError",
    "PlacementKind",
    "PlacementPolicy",
    "SerializationNameMismatchError",
    "ShapeMismatchError",
    "ViewInvalidatedError",
    "get_default_arbitrator",
    "read_matrix",
    "set_default_arbitrator",
    "write_matrix",
]
