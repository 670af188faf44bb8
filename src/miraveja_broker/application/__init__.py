"""
Application layer - Resolution and lifecycle orchestration.

This layer contains the use cases that orchestrate domain objects.
It depends only on the Domain layer.
"""

from .broker import Broker
from .circular_detector import CycleDetector
from .graph_resolver import DependencyGraphResolver, check_action_singletons
from .instance_cache import InstanceCache, invoke
from .registry import ComponentRegistry

__all__ = [
    "Broker",
    "ComponentRegistry",
    "DependencyGraphResolver",
    "InstanceCache",
    "CycleDetector",
    "check_action_singletons",
    "invoke",
]
