"""
Backend-independent vocabulary: states, devices, errors and the buffer and
runtime protocols implemented by the infrastructure layer.
"""
