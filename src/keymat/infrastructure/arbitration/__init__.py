from ._arbitrator import DeviceArbitrator, PlacementKind, PlacementPolicy

__all__ = ["DeviceArbitrator", "PlacementKind", "PlacementPolicy"]
