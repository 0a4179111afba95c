"""Product domain schemas - Pydantic models for validation"""

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

ProductStatus = Literal["approved", "unapproved"]
WarrantyType = Literal["basic", "extended", "lifetime"]
ProductSortKey = Literal["newest", "oldest", "name-asc", "name-desc"]

DEFAULT_WARRANTY_MONTHS = 12


class WarrantyDetails(BaseModel):
    """Warranty metadata owned by exactly one product"""

    type: WarrantyType = "basic"
    duration: int = Field(default=DEFAULT_WARRANTY_MONTHS, ge=0, description="Duration in months")
    coverage: list[str] = Field(default_factory=list)
    provider: str = ""
    terms: str = ""

    @field_validator("coverage", mode="before")
    @classmethod
    def unique_coverage(cls, v):
        if v is None:
            return []
        if not isinstance(v, (list, tuple, set)):
            raise ValueError("coverage must be a list of strings")
        seen = []
        for item in v:
            item = str(item).strip()
            if item and item not in seen:
                seen.append(item)
        return seen

    @field_validator("provider", "terms", mode="before")
    @classmethod
    def empty_text(cls, v):
        return v or ""


class ProductCreate(BaseModel):
    """Schema for creating a product"""

    name: str
    description: str = ""
    serialNumber: Optional[str] = None
    purchaseDate: Optional[dt.date] = None
    warranty: WarrantyDetails = Field(default_factory=WarrantyDetails)
    status: Optional[ProductStatus] = None
    existingImages: list[str] = Field(default_factory=list)

    @field_validator("purchaseDate", mode="before")
    @classmethod
    def blank_date(cls, v):
        return v or None


class ProductUpdate(BaseModel):
    """Schema for updating a product; omitted fields are left untouched"""

    name: Optional[str] = None
    description: Optional[str] = None
    serialNumber: Optional[str] = None
    purchaseDate: Optional[dt.date] = None
    warranty: Optional[WarrantyDetails] = None
    status: Optional[ProductStatus] = None
    existingImages: Optional[list[str]] = None

    @field_validator("purchaseDate", mode="before")
    @classmethod
    def blank_date(cls, v):
        return v or None


class ProductStatusUpdate(BaseModel):
    status: ProductStatus


class ProductResponse(BaseModel):
    """Schema for product response"""

    id: int
    name: str
    description: str
    serialNumber: Optional[str] = None
    purchaseDate: Optional[dt.date] = None
    warranty: WarrantyDetails
    images: list[str]
    userId: str
    uploaderEmail: Optional[str] = None
    status: ProductStatus
    createdAt: Optional[dt.datetime] = None
    updatedAt: Optional[dt.datetime] = None


class ProductPageResponse(BaseModel):
    items: list[ProductResponse]
    totalCount: int
    totalPages: int
    page: int
    pageSize: int
