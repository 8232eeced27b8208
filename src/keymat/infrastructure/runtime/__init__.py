from ._cupy_runtime import HAS_CUPY, CupyRuntime

__all__ = ["CupyRuntime", "HAS_CUPY"]
