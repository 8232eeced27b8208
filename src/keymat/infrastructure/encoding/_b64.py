from __future__ import annotations

import base64
from typing import Any, Dict

import numpy as np


def bytes_to_b64_str(b: bytes) -> str:
    """
    Encode raw bytes into a base64 ASCII string (JSON-safe).
    """
    return base64.b64encode(b).decode("ascii")


def b64_str_to_bytes(s: str) -> bytes:
    """
    Decode a base64 ASCII string back into raw bytes.
    """
    return base64.b64decode(s.encode("ascii"))


def ndarray_to_payload(arr: np.ndarray, order: str = "C") -> Dict[str, Any]:
    """
    Serialize a host ndarray into a JSON-safe payload.

    Parameters
    ----------
    arr : np.ndarray
        Array to encode.
    order : str
        Memory order of the encoded bytes: "C" or "F" (column-major, the
        native order of dense matrix buffers).

    Returns
    -------
    dict
        {
          "b64": "<base64>",
          "dtype": "<numpy dtype str>",
          "shape": [...],
          "order": "C" | "F"
        }
    """
    if order not in ("C", "F"):
        raise ValueError(f"order must be 'C' or 'F', got {order!r}")
    a = np.asarray(arr)
    return {
        "b64": bytes_to_b64_str(a.tobytes(order=order)),
        "dtype": a.dtype.str,  # e.g. "<f4"
        "shape": list(a.shape),
        "order": order,
    }


def payload_to_ndarray(payload: Dict[str, Any]) -> np.ndarray:
    """
    Deserialize a JSON payload back into an owning NumPy ndarray.

    Payloads without an "order" field are read as C-ordered.
    """
    b = b64_str_to_bytes(str(payload["b64"]))
    dtype = np.dtype(str(payload["dtype"]))
    shape = tuple(int(x) for x in payload["shape"])
    order = str(payload.get("order", "C"))

    arr = np.frombuffer(b, dtype=dtype).reshape(shape, order=order)
    return np.array(arr, copy=True, order=order)
