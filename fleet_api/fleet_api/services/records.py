"""Helpers shared by the entity services.

Converts input models into column values, builds the common listing
filters and runs bulk imports item by item.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import ColumnElement, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.config import FleetSettings
from fleet_api.engine.orchestrator import ConsistencyOrchestrator
from fleet_api.errors import FleetError, RecordValidationError
from fleet_api.schemas import ImportFailure, ImportResult
from fleet_api.state.repository import escape_like

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)
RecordT = TypeVar("RecordT")


def build_orchestrator(session: AsyncSession, settings: FleetSettings | None = None) -> ConsistencyOrchestrator:
    """Create the consistency orchestrator for one request session."""
    if settings is None:
        return ConsistencyOrchestrator(session)
    return ConsistencyOrchestrator(
        session,
        tax_rate=settings.tax_rate,
        totals_max_attempts=settings.totals_max_attempts,
    )


def column_values(
    payload: BaseModel,
    table: type,
    *,
    partial: bool = False,
    exclude: frozenset[str] | set[str] = frozenset(),
) -> dict[str, Any]:
    """Flatten an input model into values for *table*'s columns.

    Nested models are stored as camelCase JSON and enums by value.  For a
    full write (``partial=False``) ``None`` values are dropped so column
    defaults apply.  For a partial update only fields the client actually
    sent are kept, and ``None`` only clears columns that are nullable.
    """
    columns = table.__table__.c  # type: ignore[attr-defined]
    names = payload.model_fields_set if partial else type(payload).model_fields.keys()
    values: dict[str, Any] = {}
    for name in names:
        if name in exclude or name not in columns:
            continue
        value = getattr(payload, name)
        if value is None and (not partial or not columns[name].nullable):
            continue
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
        elif isinstance(value, Enum):
            value = value.value
        values[name] = value
    return values


def require_text(value: str | None, field: str) -> str:
    """Return *value* stripped, or raise when it is missing or blank."""
    if value is None or not str(value).strip():
        raise RecordValidationError(f"{field} is required")
    return str(value).strip()


def contains_any(term: str | None, *columns: Any) -> ColumnElement[bool] | None:
    """Case-insensitive substring match of *term* against any of *columns*."""
    if term is None or not term.strip():
        return None
    pattern = f"%{escape_like(term.strip().lower())}%"
    return or_(*(column.ilike(pattern, escape="\\") for column in columns))


def criteria_of(*clauses: ColumnElement[bool] | None) -> list[ColumnElement[bool]]:
    """Drop the ``None`` placeholders left by unset filters."""
    return [clause for clause in clauses if clause is not None]


async def import_each(
    session: AsyncSession,
    items: Sequence[ItemT],
    create: Callable[[ItemT], Awaitable[RecordT]],
    *,
    entity: str,
) -> ImportResult[RecordT]:
    """Create every item in its own savepoint, collecting per-item failures.

    A failing item rolls back only its own savepoint; the rest of the batch
    is still imported.
    """
    result: ImportResult[RecordT] = ImportResult()
    for item in items:
        try:
            async with session.begin_nested():
                record = await create(item)
        except (FleetError, SQLAlchemyError) as exc:
            logger.warning("%s import item rejected: %s", entity, exc)
            result.errors.append(
                ImportFailure(item=item.model_dump(mode="json", by_alias=True, exclude_none=True), error=str(exc))
            )
            continue
        result.success.append(record)

    logger.info("%s import: %d created, %d rejected", entity, len(result.success), len(result.errors))
    return result
