"""
Runtime collaborators: primitives, named instances, the object factory and
the in-process reference engines.
"""

from .application import Application
from .commands import CommandRegistry, Primitive, primitive
from .engines import Engine, MemoryEngine
from .factory import ObjectFactory
from .instances import NamedInstanceStore
from .statistics import StatisticsRegistry, global_statistics

__all__ = [
    "Application",
    "CommandRegistry",
    "Engine",
    "MemoryEngine",
    "NamedInstanceStore",
    "ObjectFactory",
    "Primitive",
    "StatisticsRegistry",
    "global_statistics",
    "primitive",
]
