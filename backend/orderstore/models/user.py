from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from orderstore.db import Base


def _now():
    return datetime.now(timezone.utc)


class Role(Base):
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True, autoincrement=True)
    role_name = Column(String(50), unique=True, nullable=False)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    # opaque hash produced by the auth service; never computed here
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    role_links = relationship(
        "UserRole", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    addresses = relationship(
        "Address", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def role_names(self):
        return sorted(link.role.role_name for link in self.role_links)


class UserRole(Base):
    __tablename__ = "user_roles"
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    role_id = Column(
        Integer, ForeignKey("roles.id", ondelete="RESTRICT"), primary_key=True
    )
    assigned_at = Column(DateTime, default=_now, nullable=False)

    user = relationship("User", back_populates="role_links")
    role = relationship("Role")


class Address(Base):
    __tablename__ = "addresses"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label = Column(String(100), nullable=True)  # e.g. "Home", "Office"
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=True)
    postal_code = Column(String(30), nullable=True)
    country = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    is_default_shipping = Column(Boolean, default=False, nullable=False, index=True)
    is_default_billing = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    user = relationship("User", back_populates="addresses")
