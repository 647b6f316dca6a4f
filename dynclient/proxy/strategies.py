"""Lifecycle manager flavors.

Lifetime: per-session reuses one instance until it is closed or a call fails;
per-call builds and tears down an instance around every call.

Failure policy: throwable re-raises the fault (the wrapped cause rather than
the dispatch wrapper); unthrowable closes the instance, reports the fault
through ``error_occurred`` and the log, and returns None.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from dynclient.client.registry import OperationEntry
from dynclient.proxy.base import ProxyLifecycleManager
from dynclient.utils.exceptions import unwrap_invocation_error


class PerSessionThrowableProxy(ProxyLifecycleManager):
    def _invoke(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        try:
            return self._dispatch(self._get_proxy(), entry, args)
        except Exception as e:
            self._close_proxy()
            inner = unwrap_invocation_error(e)
            if inner is e:
                raise
            raise inner from inner.__cause__


class PerSessionUnthrowableProxy(ProxyLifecycleManager):
    def open(self) -> None:
        try:
            super().open()
        except Exception as e:
            self._report_fault(e)

    def _invoke(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        try:
            return self._dispatch(self._get_proxy(), entry, args)
        except Exception as e:
            self._close_proxy()
            self._report_fault(unwrap_invocation_error(e), entry)
            return None


class _PerCallProxy(ProxyLifecycleManager):
    """Per-call flavors never keep an instance between calls."""

    def open(self) -> None:
        self._check_disposed()
        logger.debug(f"{type(self).__name__} opens a fresh instance for every call")

    def _call_once(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        instance = self._create_instance()
        try:
            return self._dispatch(instance, entry, args)
        finally:
            self._close_proxy_instance(instance)


class PerCallThrowableProxy(_PerCallProxy):
    def _invoke(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        try:
            return self._call_once(entry, args)
        except Exception as e:
            inner = unwrap_invocation_error(e)
            if inner is e:
                raise
            raise inner from inner.__cause__


class PerCallUnthrowableProxy(_PerCallProxy):
    def _invoke(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        try:
            return self._call_once(entry, args)
        except Exception as e:
            self._report_fault(unwrap_invocation_error(e), entry)
            return None
