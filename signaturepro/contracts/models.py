# signaturepro/contracts/models.py

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from signaturepro.core.db import Base
from signaturepro.contracts.schemas import ContractStatus
from signaturepro.users.models import TimestampMixin, User, new_uuid


class Contract(Base, TimestampMixin):
    """
    A document routed to one or more signers. Status only changes through
    the signing coordinator.
    """
    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)

    # Blob storage key of the original document; bytes never pass through here
    document_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    status: Mapped[ContractStatus] = mapped_column(
        Enum(ContractStatus, native_enum=False, length=32),
        default=ContractStatus.DRAFT,
        index=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    owner: Mapped[User] = relationship("User")
    signers: Mapped[List["Signer"]] = relationship(
        "Signer",
        back_populates="contract",
        order_by="Signer.position",
        cascade="all, delete-orphan",
    )


class Signer(Base, TimestampMixin):
    """A recipient who must sign one contract."""
    __tablename__ = "signers"
    __table_args__ = (
        UniqueConstraint("contract_id", "email", name="uq_signers_contract_email"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    contract_id: Mapped[str] = mapped_column(ForeignKey("contracts.id", ondelete="CASCADE"), index=True)
    email: Mapped[str] = mapped_column(String(320))
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    signed: Mapped[bool] = mapped_column(Boolean, default=False)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    declined: Mapped[bool] = mapped_column(Boolean, default=False)
    declined_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decline_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Data URL captured by the signing pad
    signature_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    contract: Mapped[Contract] = relationship("Contract", back_populates="signers")
