# signaturepro/users/models.py

import uuid

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from signaturepro.core.db import Base


def new_uuid() -> str:
    """String primary key generator shared by all tables"""
    return str(uuid.uuid4())


# --- Mixins ---
class TimestampMixin:
    """Mixin for creation/update timestamps."""

    @declared_attr
    def created_on(cls):
        """
        Column for the timestamp when this record was created
        """
        return Column(
            DateTime(timezone=True),
            server_default=func.now(),
            comment="Timestamp when this record was created",
        )

    @declared_attr
    def updated_on(cls):
        """
        Column for the timestamp when this record was last updated
        """
        return Column(
            DateTime(timezone=True),
            onupdate=func.now(),
            server_default=func.now(),
            comment="Timestamp when this record was last updated",
        )
# --- End of Mixins ---


class User(Base, TimestampMixin):
    """Contract owner. Rows are created by the registration flow."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email_address: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
