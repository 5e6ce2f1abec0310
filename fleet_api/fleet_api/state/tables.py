"""SQLAlchemy 2.0 ORM table definitions for the fleet record store.

Every entity lives in its own table and references other entities by id
only; there are no foreign-key constraints because records are managed as
independent documents (an alert may outlive the line item it mentions).
The ``Base`` declarative base is exported for table creation and the
repository layer.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Cross-dialect JSON type: JSONB on PostgreSQL, plain JSON (TEXT) on SQLite.
_JsonType = JSONB(none_as_null=True).with_variant(JSON(none_as_null=True), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware ``DateTime`` that coerces naive values to UTC.

    SQLite drops the offset on the way in, so values read back are naive.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all fleet tables."""


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class VehicleTable(_Timestamps, Base):
    """Fleet vehicles and their compliance expiration dates."""

    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vin: Mapped[str] = mapped_column(String(32), nullable=False)
    make: Mapped[str] = mapped_column(String(128), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Active")
    color: Mapped[str | None] = mapped_column(String(64), nullable=True)
    truck_external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    company_dispatch_location: Mapped[str | None] = mapped_column(String(256), nullable=True)
    title_holder: Mapped[str | None] = mapped_column(String(256), nullable=True)
    tire_size: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tag_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_preventative_maintenance_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    modivcare_inspection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    alivi_inspection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    ride2md_inspection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    insurance_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    tag_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    annual_inspection_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    registration_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("vin", name="uq_vehicles_vin"),
        Index("ix_vehicles_tag_number", "tag_number"),
        Index("ix_vehicles_status", "status"),
    )


class VendorTable(_Timestamps, Base):
    """Service providers and parts suppliers."""

    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Active")
    type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    contact: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    address: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_vendors_status", "status"),)


class ServiceTypeTable(_Timestamps, Base):
    """Service catalog entries that line items are billed against."""

    __tablename__ = "service_types"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Active")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="Service")

    __table_args__ = (Index("ix_service_types_status", "status"),)


# ---------------------------------------------------------------------------
# Invoices and line items
# ---------------------------------------------------------------------------


class InvoiceTable(_Timestamps, Base):
    """Vendor invoices.  Money fields are derived from the line items."""

    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vehicle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(128), nullable=False)
    order_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    upload_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sub_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    invoice_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Draft")
    # Bumped on every totals write; guards the read-modify-write in the aggregator.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        Index("ix_invoices_vehicle", "vehicle_id"),
        Index("ix_invoices_vendor", "vendor_id"),
        Index("ix_invoices_status", "status"),
    )


class LineItemTable(_Timestamps, Base):
    """Priced service or part entries belonging to one invoice."""

    __tablename__ = "line_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    service_type_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # Denormalized from the parent invoice.
    vehicle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="Parts")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)
    mileage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warranty: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warranty_mileage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    warranty_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("ix_line_items_invoice", "invoice_id"),
        Index("ix_line_items_vehicle_service", "vehicle_id", "service_type_id"),
    )


# ---------------------------------------------------------------------------
# Alerts and documents
# ---------------------------------------------------------------------------


class AlertTable(_Timestamps, Base):
    """Advisory alerts raised by the rule engine or by administrators."""

    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    line_item_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    service_type_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    valid_line_item: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reasons: Mapped[str] = mapped_column(String(64), nullable=False)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    resolution: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)

    __table_args__ = (
        Index("ix_alerts_line_item", "line_item_id"),
        Index("ix_alerts_invoice_status", "invoice_id", "status"),
        Index("ix_alerts_vehicle_type", "vehicle_id", "type"),
    )


class DocumentTable(_Timestamps, Base):
    """Vehicle paperwork metadata (the file itself lives in blob storage)."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    file: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)

    __table_args__ = (Index("ix_documents_vehicle", "vehicle_id"),)
