"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Billing records handed to payment gateways
- Audit logs
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Enum,
    Numeric,
    JSON,
)
from sqlalchemy.orm import declarative_base, object_session
from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any
from sqlalchemy.sql import func

Base = declarative_base()


class BillingStatus(PyEnum):
    pending = "pending"
    authorized = "authorized"
    captured = "captured"


class Billing(Base):
    """
    A transaction-in-progress as seen by the payment gateways.

    Gateways read ``identifier`` and ``amount`` and keep their own state in
    ``payload``; ``save()`` is the durable persist they call after writing it.
    """

    __tablename__ = "billings"

    id = Column(Integer, primary_key=True)
    # Unique so two rows can never stand for the same payment
    identifier = Column(String(64), nullable=False, unique=True, index=True)
    amount_value = Column("amount", Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    gateway = Column(String(32), nullable=False, default="paypal")
    status = Column(Enum(BillingStatus), nullable=False, default=BillingStatus.pending)
    payload = Column(JSON, nullable=False, default=dict)
    capture_id = Column(String(64))
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    def get_identifier(self) -> str:
        return self.identifier

    def amount(self) -> Decimal:
        return Decimal(str(self.amount_value))

    def get_payload(self, key: str, default: Any = None) -> Any:
        return (self.payload or {}).get(key, default)

    def set_payload(self, key: str, value: Any) -> "Billing":
        # Assign a new dict so the JSON column registers the change
        self.payload = {**(self.payload or {}), key: value}
        return self

    def forget_payload(self, key: str) -> "Billing":
        payload = dict(self.payload or {})
        payload.pop(key, None)
        self.payload = payload
        return self

    def save(self) -> None:
        session = object_session(self)
        if session is None:
            raise RuntimeError(f"Billing {self.identifier} is not attached to a session")
        try:
            session.commit()
        except Exception:
            session.rollback()
            raise

    def refresh(self) -> "Billing":
        session = object_session(self)
        if session is None:
            return self
        # FOR UPDATE holds the row until save() commits; SQLite renders no lock clause
        session.refresh(self, with_for_update=True)
        return self

    def __repr__(self):
        return f"<Billing(identifier={self.identifier}, status={self.status})>"


class AuditAction(PyEnum):
    """Enum for audit log actions."""

    billing_created = "billing_created"
    payment_authorized = "payment_authorized"
    payment_captured = "payment_captured"
    payment_failed = "payment_failed"


class AuditLog(Base):
    """Model for audit logs tracking billing and payment actions."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    billing_id = Column(Integer, ForeignKey("billings.id"), index=True)
    action = Column(Enum(AuditAction), index=True)
    payload = Column(JSON, nullable=False)  # generic blob
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return (
            f"<AuditLog(id={self.id}, billing_id={self.billing_id}, action={self.action})>"
        )
