from ._device import AUTOPLACEMATRIX, CPUDEVICE, Device, DeviceType
from ._device_protocol import DeviceLike

__all__ = ["AUTOPLACEMATRIX", "CPUDEVICE", "Device", "DeviceLike", "DeviceType"]
