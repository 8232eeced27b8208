"""
Matrix control-path manager for format-specific dispatch.

This module specializes the generic `create_path_builder` utility with the
state attribute name ``"matrix_type"``. Matrix methods are therefore
dispatched on the runtime value of ``self.matrix_type``:

    @matrix_control_path_manager(MMA, MMA.fill, MatrixType.DENSE)
    def fill_dense(self, value): ...

    @matrix_control_path_manager(MMA, MMA.fill, MatrixType.SPARSE)
    def fill_sparse(self, value): ...

Dispatch itself never moves data. Each registered path starts by asking the
facade to arbitrate placement, so the path only ever sees buffers that
already live on the chosen device.

When no path matches, a blank (format-undetermined) matrix raises
`InvalidStateError`; any other state raises `MatrixTypeNotSupportedError`.
"""

from typing import Any, Callable

from ...domain._errors import InvalidStateError, MatrixTypeNotSupportedError
from ...domain._state import MatrixType
from ...domain.utils._control_path import create_path_builder


def _missing_path(method: Callable[..., Any], current: Any) -> BaseException:
    if current is MatrixType.UNDETERMINED:
        return InvalidStateError(
            method.__name__, "matrix format is undetermined; allocate or assign it first"
        )
    value = current.value if isinstance(current, MatrixType) else str(current)
    return MatrixTypeNotSupportedError(method.__name__, value)


_path_builder = create_path_builder("matrix_type")


def matrix_control_path_manager(cls: type, method: Callable[..., Any], state: MatrixType):
    """Register a control path of a Matrix method for one `MatrixType`."""
    return _path_builder(cls, method, state, _missing_path)
