"""
Utility modules: resource management and structural protocols.
"""
from .resources import RESOURCES, Resources, LodhiWarning, jit
from .protocols import HasCigar
