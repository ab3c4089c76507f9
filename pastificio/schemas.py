"""
Pydantic Schemas for Request/Response Validation

Author: Khalil Bannouri
Version: 1.0.0
"""

import re
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pastificio.models import OrderStatus, ProductCategory, UnitOfMeasure
from pastificio.services.backup.schemas import ArchiveMetadata, ArchiveType


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[a-zA-Z]{2,}$")


def check_phone(v: str) -> str:
    cleaned = re.sub(r"[^\d]", "", v)
    if len(cleaned) < 6:
        raise ValueError("Phone number must have at least 6 digits")
    return v


def check_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email address")
    return v


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single product line in an order."""
    product: str = Field(..., min_length=1, max_length=100, examples=["Culurgiones"])
    category: ProductCategory = Field(..., examples=["pasta"])
    quantity: float = Field(..., gt=0, examples=[2])
    unit: UnitOfMeasure = Field(default=UnitOfMeasure.KG, examples=["kg"])
    price: float = Field(..., ge=0, examples=[15.0])

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.price, 2)


class OrderCreate(BaseModel):
    """Request schema for booking a new order."""
    customer_id: Optional[int] = Field(None, description="Registered customer placing the order")
    customer_name: str = Field(..., min_length=2, max_length=100, examples=["Maria Rossi"])
    phone: str = Field(..., min_length=6, max_length=20, examples=["+39 070 123456"])
    pickup_date: date = Field(..., examples=["2024-12-24"])
    pickup_time: str = Field(..., examples=["10:30"])
    takeaway: bool = False
    notes: Optional[str] = Field(None, max_length=500)
    items: List[OrderItemCreate] = Field(..., min_length=1)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return check_phone(v)

    @field_validator("pickup_time")
    @classmethod
    def validate_pickup_time(cls, v: str) -> str:
        if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", v):
            raise ValueError("Pickup time must be HH:MM")
        return v

    @property
    def total(self) -> float:
        return round(sum(item.quantity * item.price for item in self.items), 2)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: Optional[int] = None
    customer_name: str
    phone: str
    pickup_date: datetime
    pickup_time: str
    takeaway: bool
    items: list[dict[str, Any]]
    notes: Optional[str]
    total: float
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderListResponse(BaseModel):
    total: int
    orders: List[OrderResponse]


# =============================================================================
# CUSTOMER SCHEMAS
# =============================================================================

class CustomerCreate(BaseModel):
    """Request schema for registering a customer."""
    name: str = Field(..., min_length=2, max_length=100, examples=["Maria Rossi"])
    phone: str = Field(..., min_length=6, max_length=20, examples=["+39 070 123456"])
    email: Optional[str] = Field(None, max_length=255, examples=["maria.rossi@example.com"])
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return check_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return check_email(v)


class CustomerUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, min_length=6, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else check_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return check_email(v)


class PointsUpdate(BaseModel):
    points: int = Field(..., description="Points to add; negative to redeem", examples=[10])

    @field_validator("points")
    @classmethod
    def validate_points(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Points change must not be zero")
        return v


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: str
    email: Optional[str] = None
    notes: Optional[str] = None
    points: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CustomerListResponse(BaseModel):
    total: int
    customers: List[CustomerResponse]


# =============================================================================
# BACKUP SCHEMAS
# =============================================================================

class BackupCreateRequest(BaseModel):
    type: ArchiveType = ArchiveType.FULL
    compress: bool = True
    encrypt: bool = False
    compression_level: Optional[int] = Field(None, ge=1, le=9)


class ArchiveResponse(BaseModel):
    filename: str
    created_at: datetime
    size: int
    metadata: Optional[ArchiveMetadata] = None
    read_error: Optional[str] = None


class BackupCreateResponse(BaseModel):
    success: bool
    message: str
    archive: Optional[ArchiveResponse] = None


class BackupListResponse(BaseModel):
    total: int
    summary: dict[str, int]
    backups: List[ArchiveResponse]


class BackupRestoreRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    apply: bool = Field(
        default=False,
        description="Write the restored records back into the database",
    )


class BackupRestoreResponse(BaseModel):
    success: bool
    message: str
    filename: str
    kind: str
    record_counts: dict[str, int]
    applied: Optional[dict[str, int]] = None


# =============================================================================
# GENERIC
# =============================================================================

class ReportResponse(BaseModel):
    success: bool = True
    data: Any


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    backup_directory: str
    timestamp: datetime
