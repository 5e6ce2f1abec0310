"""Shared Pydantic request and response models.

Field names are snake_case in Python and camelCase on the wire.  Input
models leave domain-required fields optional so that services can report
missing values as validation errors (HTTP 400) and bulk imports can reject
individual items instead of the whole request.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleet_api.enums import (
    AlertStatus,
    DocumentType,
    InvoiceStatus,
    LineItemType,
    RecordStatus,
    ResolutionAction,
    ServiceTypeKind,
    VendorType,
)

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialising to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordModel(CamelModel):
    """Base for stored records; built straight from ORM rows."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Page(CamelModel, Generic[T]):
    """One page of a filtered listing."""

    data: list[T]
    total: int


class ImportFailure(CamelModel):
    item: dict[str, Any]
    error: str


class ImportResult(CamelModel, Generic[T]):
    """Per-item outcome of a bulk import."""

    success: list[T] = Field(default_factory=list)
    errors: list[ImportFailure] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Vehicles
# ---------------------------------------------------------------------------


class _VehicleFields(CamelModel):
    color: str | None = None
    truck_external_id: str | None = None
    company_dispatch_location: str | None = None
    title_holder: str | None = None
    tire_size: str | None = None
    tag_number: str | None = None
    last_preventative_maintenance_date: date | None = None
    modivcare_inspection_date: date | None = None
    alivi_inspection_date: date | None = None
    ride2md_inspection_date: date | None = Field(default=None, alias="ride2MdInspectionDate")
    insurance_expiration_date: date | None = None
    tag_expiration_date: date | None = None
    annual_inspection_expiration_date: date | None = None
    registration_expiration_date: date | None = None


class VehicleInput(_VehicleFields):
    """Vehicle create / update / import payload."""

    id: str | None = None
    vin: str | None = None
    make: str | None = None
    year: int | None = None
    status: RecordStatus | None = None


class VehicleRecord(RecordModel, _VehicleFields):
    vin: str
    make: str
    year: int
    status: RecordStatus


class VinDecodeResult(CamelModel):
    """Vehicle attributes decoded from a VIN."""

    vin: str
    make: str | None = None
    model: str | None = None
    model_year: str | None = None
    manufacturer: str | None = None
    plant_city: str | None = None
    vehicle_type: str | None = None
    body_class: str | None = None
    series: str | None = None
    trim: str | None = None
    engine_model: str | None = None
    engine_cylinders: str | None = None
    displacement: str | None = None
    fuel_type: str | None = None
    drive_type: str | None = None
    transmission: str | None = None
    error_code: str | None = None
    error_text: str | None = None
    additional_error_text: str | None = None


# ---------------------------------------------------------------------------
# Vendors and service types
# ---------------------------------------------------------------------------


class ContactInfo(CamelModel):
    name: str | None = None
    phone: str | None = None
    email: str | None = None


class Address(CamelModel):
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class VendorInput(CamelModel):
    id: str | None = None
    name: str | None = None
    status: RecordStatus | None = None
    type: VendorType | None = None
    contact: ContactInfo | None = None
    address: Address | None = None
    note: str | None = None


class VendorRecord(RecordModel):
    name: str
    status: RecordStatus
    type: VendorType | None = None
    contact: ContactInfo | None = None
    address: Address | None = None
    note: str | None = None


class ServiceTypeInput(CamelModel):
    id: str | None = None
    name: str | None = None
    description: str | None = None
    status: RecordStatus | None = None
    type: ServiceTypeKind | None = None


class ServiceTypeRecord(RecordModel):
    name: str
    description: str
    status: RecordStatus
    type: ServiceTypeKind


# ---------------------------------------------------------------------------
# Invoices and line items
# ---------------------------------------------------------------------------


class InvoiceInput(CamelModel):
    """Invoice create / update / import payload.

    ``subTotal``, ``tax`` and ``invoiceAmount`` are accepted for
    compatibility but ignored: they are always derived from the line items.
    """

    id: str | None = None
    vehicle_id: str | None = None
    vendor_id: str | None = None
    invoice_number: str | None = None
    order_start_date: date | None = None
    upload_date: date | None = None
    description: str | None = None
    status: InvoiceStatus | None = None
    sub_total: float | None = None
    tax: float | None = None
    invoice_amount: float | None = None


class InvoiceRecord(RecordModel):
    vehicle_id: str
    vendor_id: str
    invoice_number: str
    order_start_date: date
    upload_date: date
    description: str
    sub_total: float
    tax: float
    invoice_amount: float
    status: InvoiceStatus
    version: int


class LineItemInput(CamelModel):
    """Line-item create / update / import payload.

    ``totalPrice``, ``vehicleId`` and ``vendorId`` are derived and ignored
    when supplied.
    """

    id: str | None = None
    service_type_id: str | None = None
    invoice_id: str | None = None
    type: LineItemType | None = None
    unit_price: float | None = None
    quantity: float | None = None
    mileage: float | None = None
    taxable: bool | None = None
    warranty: bool | None = None
    warranty_mileage: float | None = None
    warranty_date: date | None = None
    description: str | None = None
    total_price: float | None = None
    vehicle_id: str | None = None
    vendor_id: str | None = None


class LineItemRecord(RecordModel):
    service_type_id: str
    invoice_id: str
    vehicle_id: str
    vendor_id: str
    type: LineItemType
    unit_price: float
    quantity: float
    total_price: float
    mileage: int
    taxable: bool
    warranty: bool
    warranty_mileage: int | None = None
    warranty_date: date | None = None
    description: str


# ---------------------------------------------------------------------------
# Alerts and documents
# ---------------------------------------------------------------------------


class AlertResolution(CamelModel):
    action: ResolutionAction
    by_user_id: str
    by_user_email: str | None = None
    at: datetime
    note: str | None = None


class AlertInput(CamelModel):
    id: str | None = None
    type: str | None = None
    category: str | None = None
    subcategory: str | None = None
    vehicle_id: str | None = None
    line_item_id: str | None = None
    invoice_id: str | None = None
    service_type_id: str | None = None
    valid_line_item: str | None = None
    reasons: str | None = None
    expiration_date: date | None = None
    status: AlertStatus | None = None
    message: str | None = None
    resolution: AlertResolution | None = None


class AlertRecord(RecordModel):
    type: str
    category: str
    subcategory: str | None = None
    vehicle_id: str | None = None
    line_item_id: str | None = None
    invoice_id: str | None = None
    service_type_id: str | None = None
    valid_line_item: str | None = None
    reasons: str
    expiration_date: date | None = None
    status: AlertStatus
    message: str
    resolution: AlertResolution | None = None


class FileMetadata(CamelModel):
    id: str
    name: str
    url: str
    size: int
    content_type: str
    last_modified: datetime
    etag: str | None = None
    metadata: dict[str, str] | None = None


class DocumentInput(CamelModel):
    id: str | None = None
    vehicle_id: str | None = None
    type: DocumentType | None = None
    start_date: date | None = None
    expiration_date: date | None = None
    file: FileMetadata | None = None


class DocumentRecord(RecordModel):
    vehicle_id: str | None = None
    type: DocumentType
    start_date: date | None = None
    expiration_date: date | None = None
    file: FileMetadata | None = None


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class TotalsSnapshot(CamelModel):
    sub_total: float
    tax: float
    invoice_amount: float


class InvoiceDrift(CamelModel):
    """Difference between what an invoice stores and what its line items imply."""

    invoice_id: str
    invoice_number: str
    stored: TotalsSnapshot
    expected: TotalsSnapshot
    totals_drifted: bool
    stale_line_item_ids: list[str] = Field(default_factory=list)


class DriftReport(CamelModel):
    checked: int
    drifted: list[InvoiceDrift] = Field(default_factory=list)


class RepairReport(CamelModel):
    checked: int
    repaired: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
