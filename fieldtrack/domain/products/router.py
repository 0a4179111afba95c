"""Product router - FastAPI endpoints for product operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.image_pipeline import ImagePipeline, get_image_pipeline
from ...shared.forms import parse_form_json, read_uploads, sse_events
from ..feed import FeedScope, SnapshotFeed, get_feed
from ..listing import ProductFilters
from .schemas import (
    ProductCreate,
    ProductPageResponse,
    ProductResponse,
    ProductSortKey,
    ProductStatusUpdate,
    ProductUpdate,
    WarrantyType,
)
from .service import ProductService, to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


def get_product_service(
    db: Session = Depends(get_db),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
    feed: SnapshotFeed = Depends(get_feed),
) -> ProductService:
    """Dependency injection for ProductService"""
    return ProductService(db, pipeline, feed)


@router.get("", response_model=ProductPageResponse)
async def list_products(
    search: str = Query(""),
    sort: ProductSortKey = Query("newest"),
    page: int = Query(1, ge=1),
    warrantyTypes: list[WarrantyType] = Query(default=[]),
    hasImages: Optional[bool] = Query(None),
    hasSerialNumber: Optional[bool] = Query(None),
    hasPurchaseDate: Optional[bool] = Query(None),
    users: list[int] = Query(default=[]),
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """List visible products (admins see all, users their own)"""
    filters = ProductFilters(
        warranty_types=tuple(warrantyTypes),
        has_images=hasImages,
        has_serial_number=hasSerialNumber,
        has_purchase_date=hasPurchaseDate,
        users=tuple(users),
    )
    result = service.list_products(current_user, search=search, sort=sort, filters=filters, page=page)
    return ProductPageResponse(
        items=[to_response(p) for p in result.items],
        totalCount=result.total_count,
        totalPages=result.total_pages,
        page=result.page,
        pageSize=result.page_size,
    )


@router.get("/events")
async def product_events(
    current_user: User = Depends(get_current_user),
    feed: SnapshotFeed = Depends(get_feed),
):
    """Live product snapshots as server-sent events"""
    stream = feed.stream(
        "products",
        FeedScope.for_actor(current_user),
        transform=lambda snapshot: [to_response(p).model_dump(mode="json") for p in snapshot],
    )
    return StreamingResponse(sse_events(stream), media_type="text/event-stream")


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    return to_response(service.get_product(product_id, current_user))


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    data: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Create a product; `data` is the JSON product body, `files` the new images"""
    payload = parse_form_json(ProductCreate, data)
    product = await service.create_product(payload, current_user, await read_uploads(files))
    return to_response(product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    data: str = Form("{}"),
    files: list[UploadFile] = File(default=[]),
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    payload = parse_form_json(ProductUpdate, data)
    product = await service.update_product(product_id, payload, current_user, await read_uploads(files))
    return to_response(product)


@router.patch("/{product_id}/status", response_model=ProductResponse)
async def update_product_status(
    product_id: int,
    data: ProductStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Approve or un-approve a product (admin only)"""
    return to_response(service.set_status(product_id, data.status, current_user))


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    return service.delete_product(product_id, current_user)
