from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"

PRODUCT_APPROVED = "approved"
PRODUCT_UNAPPROVED = "unapproved"

TASK_IN_PROGRESS = "in-progress"
TASK_COMPLETED = "completed"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), default=ROLE_USER, nullable=False)  # user, admin - fixed at sign-up
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    products = relationship("Product", back_populates="owner")
    tasks = relationship("Task", back_populates="owner")

    @property
    def uid(self) -> str:
        return self.firebase_uid

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    serial_number = Column(String(255), nullable=True)
    purchase_date = Column(Date, nullable=True)

    # {type, duration, coverage[], provider, terms}
    warranty = Column(JSON, nullable=False, default=dict)
    images = Column(JSON, nullable=False, default=list)  # public object storage URLs

    uploader_email = Column(String(255), nullable=True)
    # approved: locked for the owner; only admins may change it afterwards
    status = Column(String(20), default=PRODUCT_UNAPPROVED, nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="products")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    site = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=True)

    # Status workflow: in-progress → completed (admin only)
    status = Column(String(20), default=TASK_IN_PROGRESS, nullable=False, index=True)

    # Ordered list of {date, startTime, endTime, approved}; insertion order is kept
    time_slots = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)

    uploader_email = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="tasks")
