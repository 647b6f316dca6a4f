"""In-process service hosting."""

from .host import DispatchRuntime, ServiceHost

__all__ = ["DispatchRuntime", "ServiceHost"]
