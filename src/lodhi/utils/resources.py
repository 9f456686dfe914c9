"""
Resource and optional dependency management.
"""
from functools import cached_property, lru_cache
from importlib import import_module
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor
import atexit
import os
from typing import Callable


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class LodhiWarning(Warning):
    """Base class for warnings issued by this package."""


# Classes --------------------------------------------------------------------------------------------------------------
class Resources:
    """
    Manages global resources like the shared thread pool and optional dependencies.

    Attributes:
        package (str): The package name.
    """
    def __init__(self) -> None:
        self.package = Path(__file__).parent.parent.name
        # Register cleanup to run automatically when the program exits
        atexit.register(self._cleanup)

    @cached_property
    def available_cpus(self) -> int:
        """Returns the number of available CPUs."""
        try: return os.process_cpu_count()
        except AttributeError: return os.cpu_count()

    @cached_property
    def pool(self) -> ThreadPoolExecutor:
        """Returns a shared ThreadPoolExecutor."""
        return ThreadPoolExecutor(min(32, (self.available_cpus or 1) + 4))

    def _cleanup(self):
        """Shuts down the thread pool."""
        # Check if 'pool' is in __dict__ (meaning it was initialized)
        if 'pool' in self.__dict__:
            self.pool.shutdown(wait=False, cancel_futures=True)
            del self.__dict__['pool']

    @cached_property
    def has_numba(self) -> bool:
        """Whether kernels are compiled with Numba or run as plain Python."""
        return self.has_module('numba')

    @staticmethod
    @lru_cache(maxsize=None)
    def has_module(module_name: str) -> bool:
        """Checks if a python package is installed."""
        try:
            import_module(module_name)
            return True
        except ImportError: return False

    # __enter__ and __exit__ are still useful for scoped usage (e.g. testing)
    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self._cleanup()


# Decorators -----------------------------------------------------------------------------------------------------------
def jit(signature_or_function=None, **options) -> Callable:
    """
    Compiles a numeric kernel with Numba when it is installed.

    Every kernel in the package is compiled with ``JIT_OPTIONS`` (nopython, cached, GIL released so that
    ``compute_many`` threads run in parallel); keyword arguments add to or override them. Without Numba the
    function is returned unchanged and runs on NumPy scalars.

    Examples:
        >>> @jit  # Package defaults
        ... def func(): ...

        >>> @jit(error_model='numpy')  # Defaults plus IEEE division semantics
        ... def func(): ...
    """
    if callable(signature_or_function): return _compile(signature_or_function, None, {})
    return lambda func: _compile(func, signature_or_function, options)


def _compile(func: Callable, signature, options: dict) -> Callable:
    if not RESOURCES.has_numba: return func
    from numba import jit as numba_jit
    options = {**JIT_OPTIONS, **options}
    return numba_jit(signature, **options)(func) if signature is not None else numba_jit(**options)(func)


# Constants ------------------------------------------------------------------------------------------------------------
JIT_OPTIONS = {'nopython': True, 'cache': True, 'nogil': True}
RESOURCES = Resources()
