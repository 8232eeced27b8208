"""
The `Matrix` facade and its storage cell.
"""

from ._matrix import Matrix
from ._storage import StorageCell

__all__ = [
    Matrix.__name__,
    StorageCell.__name__,
]
