"""
Named matrix records on text streams.

Each matrix is written as one JSON object on its own line:

    {
      "name": "W",
      "rows": 3, "cols": 4,
      "matrix_type": "dense" | "sparse" | "undetermined",
      "matrix_format": "dense" | "csc" | "csr" | null,
      "dtype": "float32",
      "values": <payload>                        # dense, column-major
      "data": <payload>, "indices": <payload>,   # sparse
      "indptr": <payload>
    }

Array payloads use the base64 encoding of `keymat.infrastructure.encoding`.
Several records may share a stream; they are read back in order, and each
read checks the stored name against the expected one.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, TextIO

import numpy as np
import scipy.sparse as sp

from ...domain._errors import SerializationNameMismatchError
from ...domain._state import Location, MatrixFormat, MatrixType
from ..encoding import ndarray_to_payload, payload_to_ndarray
from ..matrix._matrix import Matrix

logger = logging.getLogger(__name__)


def matrix_to_record(matrix: Matrix, name: Optional[str] = None) -> dict[str, Any]:
    """Build the JSON-safe record of `matrix` (reads a host copy, never migrates)."""
    fmt = matrix.matrix_format
    record: dict[str, Any] = {
        "name": matrix.name if name is None else str(name),
        "rows": matrix.num_rows,
        "cols": matrix.num_cols,
        "matrix_type": matrix.matrix_type.value,
        "matrix_format": fmt.value if fmt is not None else None,
        "dtype": matrix.dtype.name,
    }
    if matrix.location is Location.UNALLOCATED:
        return record
    if fmt is MatrixFormat.DENSE:
        record["values"] = ndarray_to_payload(matrix.to_numpy(), order="F")
    else:
        host = matrix.to_scipy()
        record["data"] = ndarray_to_payload(host.data)
        record["indices"] = ndarray_to_payload(host.indices)
        record["indptr"] = ndarray_to_payload(host.indptr)
    return record


def record_to_matrix(
    record: dict[str, Any], device: Any = None, arbitrator: Any = None
) -> Matrix:
    """Rebuild a matrix from a record made by `matrix_to_record`."""
    name = str(record["name"])
    rows, cols = int(record["rows"]), int(record["cols"])
    dtype = np.dtype(str(record["dtype"]))
    fmt = record.get("matrix_format")
    fmt = MatrixFormat(fmt) if fmt is not None else None

    if "values" in record:
        return Matrix.from_numpy(
            payload_to_ndarray(record["values"]),
            device,
            dtype=dtype,
            name=name,
            arbitrator=arbitrator,
        )
    if "data" in record:
        ctor = sp.csc_matrix if fmt is MatrixFormat.SPARSE_CSC else sp.csr_matrix
        host = ctor(
            (
                payload_to_ndarray(record["data"]),
                payload_to_ndarray(record["indices"]),
                payload_to_ndarray(record["indptr"]),
            ),
            shape=(rows, cols),
        )
        return Matrix.from_scipy(
            host, device, matrix_format=fmt, dtype=dtype, name=name, arbitrator=arbitrator
        )

    m = Matrix(
        device=device,
        matrix_type=MatrixType(record.get("matrix_type", "undetermined")),
        matrix_format=fmt,
        dtype=dtype,
        name=name,
        arbitrator=arbitrator,
    )
    return m.resize(rows, cols)


def write_matrix(stream: TextIO, matrix: Matrix, name: Optional[str] = None) -> None:
    """
    Append `matrix` to `stream` as one JSON line.

    Parameters
    ----------
    stream : TextIO
        Writable text stream.
    matrix : Matrix
        Matrix to write. Its data is read from the host copy if there is one.
    name : str, optional
        Stored name. Defaults to `matrix.name`.
    """
    record = matrix_to_record(matrix, name)
    stream.write(json.dumps(record))
    stream.write("\n")
    logger.debug("Wrote matrix record %r (%dx%d)", record["name"], record["rows"], record["cols"])


def read_matrix(
    stream: TextIO,
    expected_name: str,
    device: Any = None,
    arbitrator: Any = None,
) -> Matrix:
    """
    Read the next matrix record from `stream`.

    Raises
    ------
    SerializationNameMismatchError
        If the stored name differs from `expected_name`, or the stream holds
        no further record.
    """
    line = stream.readline()
    while line and not line.strip():
        line = stream.readline()
    if not line:
        raise SerializationNameMismatchError(expected_name, None)

    record = json.loads(line)
    stored = record.get("name")
    if stored != expected_name:
        raise SerializationNameMismatchError(expected_name, stored)
    return record_to_matrix(record, device=device, arbitrator=arbitrator)
