import importlib.util

NUMBA_AVAILABLE = importlib.util.find_spec("numba") is not None
