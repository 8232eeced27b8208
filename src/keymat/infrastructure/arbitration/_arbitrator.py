"""
Device placement arbitration.

This module decides *where* a matrix operation runs:

- `PlacementPolicy` is the injectable strategy used when a matrix asks for
  auto placement (fixed host, fixed device, or best available accelerator).
- `DeviceArbitrator` resolves single placement requests, probes accelerators
  through an `IDeviceRuntime`, and reconciles the operands of multi-operand
  operations onto one common device.

Failure handling
----------------
Probing an accelerator may fail (driver error, missing device, CuPy not
installed). The arbitrator never lets that escape: it logs a warning and
falls back to the host, which is always a valid placement. Probe results are
cached so the fallback decision is deterministic for the arbitrator's
lifetime (see `reset`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Union

from ...domain._errors import DeviceUnavailableError, InvalidStateError
from ...domain._runtime import DeviceCapability
from ...domain._state import Location
from ...domain.device._device import Device
from .._config import MatrixConfig

logger = logging.getLogger(__name__)

_CPU = Device("cpu")


class PlacementKind(Enum):
    """Auto-placement strategies."""

    FIXED_HOST = "fixed_host"
    FIXED_DEVICE = "fixed_device"
    AUTO_BEST = "auto_best"


@dataclass(frozen=True)
class PlacementPolicy:
    """
    Strategy applied when a placement request is "auto".

    Use the constructors `fixed_host()`, `fixed_device(index)` and
    `auto_best()` rather than building instances directly.
    """

    kind: PlacementKind
    device_index: Optional[int] = None

    @classmethod
    def fixed_host(cls) -> "PlacementPolicy":
        return cls(PlacementKind.FIXED_HOST)

    @classmethod
    def fixed_device(cls, device_index: int) -> "PlacementPolicy":
        if int(device_index) < 0:
            raise ValueError(f"device index must be non-negative, got {device_index}")
        return cls(PlacementKind.FIXED_DEVICE, int(device_index))

    @classmethod
    def auto_best(cls) -> "PlacementPolicy":
        return cls(PlacementKind.AUTO_BEST)

    @classmethod
    def from_device(cls, device: Union[Device, str, int, None]) -> "PlacementPolicy":
        """Map a device string ("cpu", "cuda:N", "auto") onto a policy."""
        d = Device.coerce(device)
        if d.is_cpu():
            return cls.fixed_host()
        if d.is_cuda():
            return cls.fixed_device(d.index)
        return cls.auto_best()


class DeviceArbitrator:
    """
    Resolves placements and reconciles operands onto one device.

    Parameters
    ----------
    runtime : IDeviceRuntime, optional
        Accelerator runtime. Without one, every placement resolves to host.
    policy : PlacementPolicy, optional
        Strategy for auto placement. Defaults to `PlacementPolicy.auto_best()`.
    config : MatrixConfig, optional
        Capability and free-memory thresholds for auto placement, plus the
        defaults matrices created with this arbitrator pick up.
    """

    def __init__(
        self,
        runtime: Any = None,
        policy: Optional[PlacementPolicy] = None,
        config: Optional[MatrixConfig] = None,
    ) -> None:
        self._runtime = runtime
        self._policy = policy or PlacementPolicy.auto_best()
        self._config = config or MatrixConfig()
        self._probe_cache: dict[int, Optional[DeviceCapability]] = {}
        self._best: Optional[Device] = None

    @property
    def runtime(self) -> Any:
        return self._runtime

    @property
    def policy(self) -> PlacementPolicy:
        return self._policy

    @property
    def config(self) -> MatrixConfig:
        return self._config

    def reset(self) -> None:
        """Forget cached probe results and the cached best device."""
        self._probe_cache.clear()
        self._best = None

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------
    def probe(self, device_index: int) -> Optional[DeviceCapability]:
        """
        Probe one accelerator.

        Returns
        -------
        Optional[DeviceCapability]
            The capability, or None if the device is unavailable. Failures are
            logged once and cached.
        """
        device_index = int(device_index)
        if device_index in self._probe_cache:
            return self._probe_cache[device_index]
        if self._runtime is None:
            logger.warning(
                "No accelerator runtime configured; device %d is unavailable", device_index
            )
            self._probe_cache[device_index] = None
            return None
        try:
            cap = self._runtime.probe(device_index)
        except DeviceUnavailableError as e:
            logger.warning("%s; falling back to host placement", e)
            cap = None
        self._probe_cache[device_index] = cap
        return cap

    def best_device(self) -> Device:
        """
        Return the best accelerator satisfying the capability and free-memory
        thresholds, or the host if there is none. The answer is cached.
        """
        if self._best is not None:
            return self._best

        count = self._runtime.device_count() if self._runtime is not None else 0
        candidates = []
        for index in range(count):
            cap = self.probe(index)
            if cap is None:
                continue
            if cap.satisfies(
                self._config.min_compute_capability, self._config.min_free_memory_bytes
            ):
                candidates.append(cap)

        if candidates:
            best = max(candidates, key=lambda c: (c.free_memory, -c.index))
            self._best = Device(f"cuda:{best.index}")
            logger.debug("Auto placement selected %s (%s)", self._best, best.name)
        else:
            if count:
                logger.warning(
                    "No accelerator meets compute capability %s and %d free bytes; "
                    "falling back to host placement",
                    self._config.min_compute_capability,
                    self._config.min_free_memory_bytes,
                )
            else:
                logger.info("No accelerator available; using host placement")
            self._best = _CPU
        return self._best

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def resolve(self, requested: Union[Device, str, int, None]) -> Device:
        """
        Resolve a placement request to a concrete device.

        Host stays host. A concrete accelerator is kept if it can be probed,
        otherwise the host is used. "auto" is resolved through the policy.
        The result is never the auto sentinel.
        """
        d = Device.coerce(requested)
        if d.is_cpu():
            return _CPU
        if d.is_cuda():
            if self.probe(d.index) is None:
                return _CPU
            return d
        if self._policy.kind is PlacementKind.FIXED_HOST:
            return _CPU
        if self._policy.kind is PlacementKind.FIXED_DEVICE:
            return self.resolve(Device(f"cuda:{self._policy.device_index}"))
        return self.best_device()

    def decide_target(self, *operands: Any) -> Device:
        """
        Pick one device for all operands of an operation.

        Rules
        -----
        - Views cannot move, so a view pins the target to where it lives.
        - If every allocated operand already holds data on a common device,
          keep it.
        - Otherwise pick where the largest operand lives; ties prefer an
          accelerator over the host.
        - If no operand holds data yet, resolve the first explicit preference
          (or auto).
        """
        present = [m for m in operands if m is not None]
        located = [m for m in present if m.location is not Location.UNALLOCATED]

        if not located:
            for m in present:
                if not m.preferred_device.is_auto():
                    return self.resolve(m.preferred_device)
            return self.resolve("auto")

        pinned = [m for m in located if m.is_view]
        if pinned:
            common = _intersect(m.resident_devices() for m in pinned)
            if not common:
                raise InvalidStateError(
                    "decide_target", "operands include views resident on different devices"
                )
            target = _prefer_accelerator(common)
        else:
            common = _intersect(m.resident_devices() for m in located)
            if common:
                target = _prefer_accelerator(common)
            else:
                largest = max(m.buffer_size for m in located)
                holders: set[Device] = set()
                for m in located:
                    if m.buffer_size == largest:
                        holders.update(m.resident_devices())
                target = _prefer_accelerator(holders)

        logger.debug("Arbitrated %d operand(s) onto %s", len(present), target)
        return target

    def decide_and_move(
        self,
        *operands: Any,
        writes: Iterable[Any] = (),
        overwrite: bool = False,
        update_preferred_device: bool = False,
    ) -> Device:
        """
        Pick a common device and bring every operand there.

        Parameters
        ----------
        *operands : Matrix
            Read-only operands. They are copied without being moved, so their
            original copy stays valid (their location becomes BOTH).
        writes : Iterable[Matrix]
            Operands written by the operation. They are moved; with
            `overwrite=True` their payload is not copied at all.
        overwrite : bool
            True if the operation overwrites `writes` completely.
        update_preferred_device : bool
            Record the decision as each operand's preferred device. Otherwise
            the move is transient.

        Returns
        -------
        Device
            The chosen device.
        """
        writes = tuple(w for w in writes if w is not None)
        reads = tuple(m for m in operands if m is not None)
        target = self.decide_target(*reads, *writes)

        for m in reads:
            if any(m is w for w in writes):
                continue
            m.transfer_to_device_if_not_there(
                target, moved=False, update_preferred_device=update_preferred_device
            )
        for w in writes:
            w.transfer_to_device_if_not_there(
                target,
                moved=True,
                empty_transfer=overwrite,
                update_preferred_device=update_preferred_device,
            )
        return target


def _intersect(groups: Iterable[Iterable[Device]]) -> set[Device]:
    result: Optional[set[Device]] = None
    for g in groups:
        s = set(g)
        result = s if result is None else result & s
    return result or set()


def _prefer_accelerator(devices: Iterable[Device]) -> Device:
    cuda = sorted((d for d in devices if d.is_cuda()), key=lambda d: d.index)
    if cuda:
        return cuda[0]
    return _CPU
