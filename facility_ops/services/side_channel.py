"""Non-blocking side channels.

Audit trail writes, notifications and push delivery run next to a primary
business operation and must never fail it. Functions decorated with
``side_channel`` always return a ``SideChannelResult``; exceptions are logged
and turned into a failed result instead of propagating.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class SideChannelResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "SideChannelResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "SideChannelResult":
        return cls(ok=False, error=error)


def side_channel(logger: logging.Logger, name: str):
    def _decorator(func: Callable[..., Any]) -> Callable[..., SideChannelResult]:
        @functools.wraps(func)
        def _wrapper(*args, **kwargs) -> SideChannelResult:
            try:
                value = func(*args, **kwargs)
            except Exception as exc:
                logger.exception("Falha no canal %s", name)
                return SideChannelResult.failure(f"{type(exc).__name__}: {exc}")
            if isinstance(value, SideChannelResult):
                return value
            return SideChannelResult.success(value)

        return _wrapper

    return _decorator
