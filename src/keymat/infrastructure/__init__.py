"""
NumPy/SciPy/CuPy implementations of the matrix dispatch layer.
"""
