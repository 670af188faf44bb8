"""
FastAPI integration module.

Provides helpers and utilities for running miraveja-broker services inside FastAPI.
"""

from .integration import (
    BrokerMiddleware,
    broker_lifespan,
    create_action_dependency,
    create_singleton_dependency,
    get_request_broker,
)

__all__ = [
    "broker_lifespan",
    "create_action_dependency",
    "create_singleton_dependency",
    "get_request_broker",
    "BrokerMiddleware",
]
