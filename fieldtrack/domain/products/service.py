"""Product service - Business logic for product operations"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import FieldTrackError, NotFound, PermissionDenied, ValidationError
from ...models import PRODUCT_UNAPPROVED, Product, User
from ...services.image_pipeline import ImageFile, ImagePipeline
from ...shared.validators import require_text
from .. import policy
from ..feed import SnapshotFeed
from ..listing import ListPage, ProductFilters, query_products
from ..users.repository import UserRepository
from .repository import ProductRepository
from .schemas import ProductCreate, ProductResponse, ProductUpdate, WarrantyDetails

logger = logging.getLogger(__name__)

# ProductUpdate field -> column
FIELD_COLUMNS = {
    "name": "name",
    "description": "description",
    "serialNumber": "serial_number",
    "purchaseDate": "purchase_date",
    "status": "status",
}


def to_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        description=product.description or "",
        serialNumber=product.serial_number,
        purchaseDate=product.purchase_date,
        warranty=WarrantyDetails.model_validate(product.warranty or {}),
        images=list(product.images or []),
        userId=product.owner.firebase_uid if product.owner else "",
        uploaderEmail=product.uploader_email,
        status=product.status,
        createdAt=product.created_at,
        updatedAt=product.updated_at,
    )


class ProductService:
    """Service layer for product business logic"""

    def __init__(self, db: Session, pipeline: ImagePipeline, feed: SnapshotFeed):
        self.db = db
        self.repo = ProductRepository()
        self.pipeline = pipeline
        self.feed = feed

    def list_products(
        self,
        user: User,
        search: str = "",
        sort: str = "newest",
        filters: Optional[ProductFilters] = None,
        page: int = 1,
    ) -> ListPage:
        """Products visible to the user, searched, filtered, sorted and paged"""
        is_admin = policy.is_admin(user)
        products = self.repo.list_visible(self.db, None if is_admin else user.id)
        owners = UserRepository.owner_directory(self.db) if is_admin else {}
        return query_products(
            products,
            search=search,
            sort=sort,
            filters=filters,
            page=page,
            viewer_is_admin=is_admin,
            owners=owners,
        )

    def get_product(self, product_id: int, user: User) -> Product:
        product = self.repo.get_product(self.db, product_id)
        # Other users' products are reported as missing, not forbidden
        if not product or not (policy.is_admin(user) or policy.is_owner(user, product)):
            raise NotFound("Product not found")
        return product

    async def _upload(self, user: User, files: Optional[list[ImageFile]]) -> list[str]:
        return await self.pipeline.upload_images(files or [], f"products/{user.firebase_uid}")

    async def create_product(
        self, data: ProductCreate, user: User, files: Optional[list[ImageFile]] = None
    ) -> Product:
        logger.info(f"📥 Creating product for user_id: {user.id}")
        name = require_text(data.name, "Please provide a product name")
        if not files and not data.existingImages:
            raise ValidationError("Please add at least one image")

        # Only admins choose the status; everyone else starts unapproved
        status = data.status if policy.is_admin(user) and data.status else PRODUCT_UNAPPROVED

        urls = await self._upload(user, files)
        try:
            product = self.repo.create_product(
                self.db,
                user.id,
                name=name,
                description=data.description or "",
                serial_number=data.serialNumber or None,
                purchase_date=data.purchaseDate,
                warranty=data.warranty.model_dump(),
                images=[*data.existingImages, *urls],
                uploader_email=user.email,
                status=status,
            )
        except FieldTrackError:
            await self.pipeline.discard(urls)
            raise
        logger.info(f"✅ Product {product.id} created ({status})")
        self.feed.publish("products")
        return product

    async def update_product(
        self, product_id: int, data: ProductUpdate, user: User, files: Optional[list[ImageFile]] = None
    ) -> Product:
        product = self.get_product(product_id, user)
        policy.ensure_can_edit_product(user, product)

        changes = data.model_dump(exclude_unset=True)
        if "status" in changes and changes["status"] != product.status and not policy.is_admin(user):
            raise PermissionDenied("Only admins can change the product status")

        updates = {}
        for field, column in FIELD_COLUMNS.items():
            if field in changes:
                updates[column] = changes[field]
        if "name" in updates:
            updates["name"] = require_text(updates["name"], "Please provide a product name")
        if updates.get("status") is None:
            updates.pop("status", None)
        if "serial_number" in updates:
            updates["serial_number"] = updates["serial_number"] or None
        if "description" in updates:
            updates["description"] = updates["description"] or ""
        if data.warranty is not None:
            updates["warranty"] = data.warranty.model_dump()

        urls = await self._upload(user, files)
        if data.existingImages is not None or urls:
            kept = data.existingImages if data.existingImages is not None else list(product.images or [])
            updates["images"] = [*kept, *urls]

        try:
            product = self.repo.update_product(self.db, product, **updates)
        except FieldTrackError:
            await self.pipeline.discard(urls)
            raise
        logger.info(f"✅ Product {product.id} updated by user_id {user.id}: {sorted(updates)}")
        self.feed.publish("products")
        return product

    def set_status(self, product_id: int, status: str, user: User) -> Product:
        if not policy.is_admin(user):
            raise PermissionDenied("Only admins can change the product status")
        product = self.get_product(product_id, user)
        product = self.repo.update_product(self.db, product, status=status)
        logger.info(f"✅ Product {product.id} marked {status}")
        self.feed.publish("products")
        return product

    def delete_product(self, product_id: int, user: User) -> dict:
        product = self.get_product(product_id, user)
        policy.ensure_can_delete_product(user, product)
        self.repo.delete_product(self.db, product)
        logger.info(f"🗑️ Product {product_id} deleted by user_id {user.id}")
        self.feed.publish("products")
        return {"message": "Product deleted"}
