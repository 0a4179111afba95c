"""Product repository - Database operations for products"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ...database import commit_or_rollback
from ...errors import PersistenceError
from ...models import Product


class ProductRepository:
    """Repository for product database operations"""

    @staticmethod
    def list_visible(db: Session, owner_id: Optional[int] = None) -> list[Product]:
        """All products (owner_id None) or one owner's products, newest first"""
        query = db.query(Product).options(joinedload(Product.owner))
        if owner_id is not None:
            query = query.filter(Product.user_id == owner_id)
        try:
            return query.order_by(Product.created_at.desc(), Product.id.desc()).all()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load products") from e

    @staticmethod
    def get_product(db: Session, product_id: int) -> Optional[Product]:
        try:
            return (
                db.query(Product)
                .options(joinedload(Product.owner))
                .filter(Product.id == product_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load product") from e

    @staticmethod
    def create_product(db: Session, user_id: int, **product_data) -> Product:
        product = Product(user_id=user_id, **product_data)
        db.add(product)
        commit_or_rollback(db, "create product")
        db.refresh(product)
        return product

    @staticmethod
    def update_product(db: Session, product: Product, **updates) -> Product:
        """Apply updates as given; None is a real value here (e.g. clearing a serial number)"""
        for key, value in updates.items():
            setattr(product, key, value)
        commit_or_rollback(db, f"update product {product.id}")
        db.refresh(product)
        return product

    @staticmethod
    def delete_product(db: Session, product: Product) -> None:
        db.delete(product)
        commit_or_rollback(db, f"delete product {product.id}")
