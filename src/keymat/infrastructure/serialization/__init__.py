from ._matrix_io import matrix_to_record, read_matrix, record_to_matrix, write_matrix

__all__ = [
    "matrix_to_record",
    "read_matrix",
    "record_to_matrix",
    "write_matrix",
]
