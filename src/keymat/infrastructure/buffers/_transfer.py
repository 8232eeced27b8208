"""
Bulk payload copies between memory domains.

Backend buffers call `copy_array_between` from their `bulk_copy_to`
implementations. It picks the right runtime primitive for each
(source location, target location) pair:

- host -> host     : NumPy copy
- host -> device   : `runtime.to_device`
- device -> host   : `runtime.to_host`
- device -> device : same-device array copy, or `runtime.copy_to_device`
                     when the target is another accelerator

All runtime primitives are synchronous from the caller's point of view.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ...domain._state import Location


def copy_array_between(array: Any, src: Any, dst: Any) -> Any:
    """
    Copy one payload array from the memory of `src` into the memory of `dst`.

    Parameters
    ----------
    array : Any
        Array living in `src`'s memory domain (NumPy or device array).
    src : IBackendBuffer
        Buffer that owns `array`.
    dst : IBackendBuffer
        Buffer whose memory domain receives the copy.

    Returns
    -------
    Any
        A freshly allocated array in `dst`'s memory domain. It never aliases
        `array`.
    """
    if dst.location is Location.HOST:
        if src.location is Location.HOST:
            return np.array(array, copy=True)
        return np.asarray(src.runtime.to_host(array))

    runtime = dst.runtime
    index = dst.device_index
    if src.location is Location.HOST:
        return runtime.to_device(np.ascontiguousarray(array), index)
    if src.device_index == index:
        with runtime.use_device(index):
            return runtime.array_module(index).array(array, copy=True)
    return runtime.copy_to_device(array, index)
