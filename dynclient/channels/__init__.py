"""Transport channels created by bindings."""

from .http import HttpChannel
from .loopback import LoopbackChannel, get_listener, register_listener, unregister_listener

__all__ = ["HttpChannel", "LoopbackChannel", "get_listener", "register_listener", "unregister_listener"]
