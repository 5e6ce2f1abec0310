"""Best-effort follow-up work that must never undo the primary write.

Every side effect (totals recompute, rule evaluation, invoice status
transition, reference propagation) goes through :func:`run_side_effect`.
The work runs inside a SAVEPOINT of the request session: if it raises, only
the savepoint is rolled back, the failure is logged with its traceback and a
failed :class:`SideEffectResult` is returned.  The caller's own writes are
kept either way.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.errors import SideEffectError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectResult:
    """Outcome of one side effect."""

    step: str
    ok: bool
    value: Any = None
    error: SideEffectError | None = None


async def run_side_effect(
    session: AsyncSession,
    step: str,
    operation: Callable[[], Awaitable[Any]],
) -> SideEffectResult:
    """Run *operation* in its own savepoint and report how it went.

    Parameters
    ----------
    session:
        The request session.  The primary write must already be flushed.
    step:
        Short label used in logs and in the returned result, e.g.
        ``"totals:inv_123"``.
    operation:
        Zero-argument coroutine factory doing the work.
    """
    try:
        async with session.begin_nested():
            value = await operation()
    except Exception as exc:
        logger.exception("Side effect %s failed; primary write kept", step)
        return SideEffectResult(step=step, ok=False, error=SideEffectError(step, exc))
    return SideEffectResult(step=step, ok=True, value=value)
