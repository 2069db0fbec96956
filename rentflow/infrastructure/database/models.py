"""SQLAlchemy ORM models for applications, ledgers and payments"""

from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, Date, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ApplicationRecord(Base):
    """Workflow position and plan for one application"""

    __tablename__ = "application"

    id = Column(String(128), primary_key=True)
    state = Column(String(32), nullable=False, default="draft")
    policy = Column(JSON, nullable=True)
    household = Column(JSON, nullable=True)
    needs_attention = Column(Boolean, nullable=False, default=False)
    unapplied_cents = Column(BigInteger, nullable=False, default=0)
    closed_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    charges = relationship("ChargeRecord", back_populates="application", cascade="all, delete-orphan")
    payments = relationship("PaymentRecord", back_populates="application", cascade="all, delete-orphan")


class ChargeRecord(Base):
    """One ledger row"""

    __tablename__ = "charge"

    charge_key = Column(String(255), primary_key=True)
    application_id = Column(String(128), ForeignKey("application.id", ondelete="CASCADE"), nullable=False, index=True)
    bucket = Column(String(16), nullable=False)
    code = Column(String(32), nullable=False)
    label = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=True)
    period = Column(String(7), nullable=True)
    posted_cents = Column(BigInteger, nullable=False, default=0)
    pending_cents = Column(BigInteger, nullable=False, default=0)

    application = relationship("ApplicationRecord", back_populates="charges")


class PaymentRecord(Base):
    """Payment attempt and the credits it currently holds"""

    __tablename__ = "payment"

    id = Column(String(128), primary_key=True)
    application_id = Column(String(128), ForeignKey("application.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(16), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="created")
    pieces = Column(JSON, nullable=False, default=list)
    unapplied_cents = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)

    application = relationship("ApplicationRecord", back_populates="payments")


class ProcessedPayment(Base):
    """Idempotency record: allocation result of the first applied success"""

    __tablename__ = "processed_payment"

    application_id = Column(String(128), ForeignKey("application.id", ondelete="CASCADE"), primary_key=True)
    payment_id = Column(String(128), primary_key=True, index=True)
    result = Column(JSON, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
