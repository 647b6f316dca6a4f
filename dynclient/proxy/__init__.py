"""Lifecycle managers, the instance cache and the proxy factory."""

from .base import ProxyLifecycleManager
from .cache import ClientProxy, ProxyInstanceCache, build_cache_key, default_instance_cache
from .factory import DynamicClientProxyFactory
from .strategies import (
    PerCallThrowableProxy,
    PerCallUnthrowableProxy,
    PerSessionThrowableProxy,
    PerSessionUnthrowableProxy,
)

__all__ = [
    "ProxyLifecycleManager",
    "ClientProxy",
    "ProxyInstanceCache",
    "build_cache_key",
    "default_instance_cache",
    "DynamicClientProxyFactory",
    "PerCallThrowableProxy",
    "PerCallUnthrowableProxy",
    "PerSessionThrowableProxy",
    "PerSessionUnthrowableProxy",
]
