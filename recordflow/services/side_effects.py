"""
RecordFlow - Side Effect Results

Audit writes and notifications run after the primary transition has been
committed. Each returns a SideEffectResult which callers log and keep
separate from the primary result; a failed side effect never raises.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SideEffectResult:
    name: str
    ok: bool
    error: Optional[str] = None
    value: Any = None

    @classmethod
    def success(cls, name: str, value: Any = None) -> "SideEffectResult":
        return cls(name=name, ok=True, value=value)

    @classmethod
    def failure(cls, name: str, error: Any) -> "SideEffectResult":
        return cls(name=name, ok=False, error=str(error))

    @classmethod
    def skipped(cls, name: str, reason: str) -> "SideEffectResult":
        # Nothing to do is not a failure
        return cls(name=name, ok=True, value={"skipped": reason})

    def to_dict(self) -> dict:
        return {"name": self.name, "ok": self.ok, "error": self.error}


@dataclass
class SideEffectReport:
    """Collected side-effect outcomes of one operation."""
    results: List[SideEffectResult] = field(default_factory=list)

    def add(self, result: SideEffectResult) -> SideEffectResult:
        self.results.append(result)
        return result

    @property
    def all_ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def failures(self) -> List[SideEffectResult]:
        return [result for result in self.results if not result.ok]

    def to_list(self) -> List[dict]:
        return [result.to_dict() for result in self.results]


async def best_effort(
    name: str,
    operation: Callable[[], Awaitable[Any]],
    context: str = "",
) -> SideEffectResult:
    """
    Run a side effect, converting any failure into a logged result.

    A coroutine returning False is treated as a failed delivery.
    """
    try:
        value = await operation()
    except Exception as e:
        logger.error(f"Side effect '{name}' failed{f' for {context}' if context else ''}: {e}", exc_info=True)
        return SideEffectResult.failure(name, e)

    if value is False:
        logger.warning(f"Side effect '{name}' reported failure{f' for {context}' if context else ''}")
        return SideEffectResult.failure(name, "delivery reported failure")
    return SideEffectResult.success(name, value)
