"""Enumerated field values shared by the engine, services and API schemas."""

from __future__ import annotations

from enum import Enum


class RecordStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class VendorType(str, Enum):
    SERVICE_PROVIDER = "ServiceProvider"
    PARTS_SUPPLIER = "PartsSupplier"
    INSURANCE = "Insurance"
    OTHER = "Other"


class ServiceTypeKind(str, Enum):
    SERVICE = "Service"
    SALES = "Sales"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle.  Only the first two are entered automatically."""

    DRAFT = "Draft"
    PENDING_ALERT_REVIEW = "PendingAlertReview"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"
    CANCELLED = "Cancelled"


class LineItemType(str, Enum):
    PARTS = "Parts"
    LABOR = "Labor"


class AlertType(str, Enum):
    WARRANTY = "WARRANTY"
    HIGHER_PRICE = "HIGHER_PRICE"
    SAME_SERVICE = "SAME_SERVICE"
    PERMIT = "PERMIT"
    LICENSE = "LICENSE"
    CERTIFICATION = "CERTIFICATION"


class AlertReason(str, Enum):
    DATE_VALID = "DATE_VALID"
    MILEAGE_VALID = "MILEAGE_VALID"
    LOWER_PRICE_FOUND = "LOWER_PRICE_FOUND"
    SAME_SERVICE_FOUND = "SAME_SERVICE_FOUND"
    EXPIRATION_DATE = "Expiration Date"


class AlertStatus(str, Enum):
    PENDING = "Pending"
    ACKNOWLEDGED = "Acknowledged"
    OVERRIDDEN = "Overridden"
    RESOLVED = "Resolved"


class ResolutionAction(str, Enum):
    OMIT = "omit"
    APPROVE = "approve"
    RENEW = "renew"
    UPLOAD = "upload"


class DocumentType(str, Enum):
    TRUCK_INSURANCE_LIABILITY = "Truck Insurance Liability"
    LEASE_PAPERWORK = "Lease Paperwork"
    REGISTRATION = "Registration"
    ANNUAL_INSPECTION = "Annual Inspection"
    INSPECCION_ALIVI = "Inspeccion Alivi"
    CUSTOM_DOCUMENT = "Custom Document"
