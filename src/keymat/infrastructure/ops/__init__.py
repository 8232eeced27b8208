"""
Format conversion kernels shared by host and device buffers.
"""

from ._format_switch import dense_to_sparse, sparse_to_dense, sparse_to_sparse

__all__ = [
    "dense_to_sparse",
    "sparse_to_dense",
    "sparse_to_sparse",
]
