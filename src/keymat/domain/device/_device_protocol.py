"""
Device abstraction contracts for KeyMat.

This module defines a duck-typed `DeviceLike` protocol that represents a
placement descriptor without coupling to the concrete `Device` class.

Design notes
------------
- Uses `typing.Protocol` and `@runtime_checkable` so both static and runtime
  checks work on device-like objects.
- `Device.coerce` accepts any object satisfying this protocol, so callers
  may pass placement descriptors from other libraries.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class DeviceLike(Protocol):
    """
    Duck-typed device contract.

    Any object that provides these members can be used as a placement
    descriptor, regardless of its concrete class identity.
    """

    type: object
    index: Optional[int]

    @property
    def id(self) -> int: ...

    def is_cpu(self) -> bool: ...
    def is_cuda(self) -> bool: ...
    def is_auto(self) -> bool: ...
    def __str__(self) -> str: ...
