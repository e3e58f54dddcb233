"""Users and their booking payments.

The ORM is synchronous; ``UserStore`` runs each operation in a worker thread so
the event loop is never blocked on the database.
"""

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()

PAYMENT_HISTORY_LIMIT = 50


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


class UserDB(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    payments = relationship("PaymentDB", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email}


class PaymentDB(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    price = Column(Float, nullable=False)
    currency = Column(String, nullable=False)
    hotel_name = Column(String, nullable=False)
    checkin_date = Column(DateTime(timezone=True), nullable=False)
    checkout_date = Column(DateTime(timezone=True), nullable=False)
    photo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    user = relationship("UserDB", back_populates="payments")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "price": self.price,
            "currency": self.currency,
            "hotelName": self.hotel_name,
            "checkinDate": self.checkin_date.isoformat(),
            "checkoutDate": self.checkout_date.isoformat(),
            "photoUrl": self.photo_url,
            "createdAt": self.created_at.isoformat(),
        }


class UserNotFoundError(LookupError):
    """No user exists for the given email."""


class UserStore:
    """Persistence for users and their payments."""

    def __init__(self, database_url: str) -> None:
        kwargs: Dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees its own empty database
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    async def ensure_user(self, email: str) -> Dict[str, Any]:
        """Return the user for ``email``, creating it if needed."""
        return await asyncio.to_thread(self._ensure_user, email)

    def _ensure_user(self, email: str) -> Dict[str, Any]:
        db = self.SessionLocal()
        try:
            user = db.query(UserDB).filter(UserDB.email == email).one_or_none()
            if user is not None:
                return user.to_dict()
            user = UserDB(email=email)
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                # Created concurrently by another request
                db.rollback()
                user = db.query(UserDB).filter(UserDB.email == email).one()
                return user.to_dict()
            logger.info(f"Created user {email}")
            return user.to_dict()
        finally:
            db.close()

    async def record_payment(
        self,
        email: str,
        price: float,
        currency: str,
        hotel_name: str,
        checkin_date: datetime,
        checkout_date: datetime,
        photo_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store a completed payment for an existing user.

        Raises:
            UserNotFoundError: no user is registered for ``email``.
        """
        return await asyncio.to_thread(
            self._record_payment, email, price, currency, hotel_name, checkin_date, checkout_date, photo_url
        )

    def _record_payment(
        self,
        email: str,
        price: float,
        currency: str,
        hotel_name: str,
        checkin_date: datetime,
        checkout_date: datetime,
        photo_url: Optional[str],
    ) -> Dict[str, Any]:
        db = self.SessionLocal()
        try:
            user = db.query(UserDB).filter(UserDB.email == email).one_or_none()
            if user is None:
                raise UserNotFoundError(email)
            payment = PaymentDB(
                user_id=user.id,
                price=price,
                currency=currency,
                hotel_name=hotel_name,
                checkin_date=checkin_date,
                checkout_date=checkout_date,
                photo_url=photo_url,
            )
            db.add(payment)
            db.commit()
            return payment.to_dict()
        finally:
            db.close()

    async def list_payments(self, email: str, limit: int = PAYMENT_HISTORY_LIMIT) -> Optional[List[Dict[str, Any]]]:
        """Most recent payments first. Returns None if the user does not exist."""
        return await asyncio.to_thread(self._list_payments, email, limit)

    def _list_payments(self, email: str, limit: int) -> Optional[List[Dict[str, Any]]]:
        db = self.SessionLocal()
        try:
            user = db.query(UserDB).filter(UserDB.email == email).one_or_none()
            if user is None:
                return None
            payments = (
                db.query(PaymentDB)
                .filter(PaymentDB.user_id == user.id)
                .order_by(PaymentDB.created_at.desc())
                .limit(limit)
                .all()
            )
            return [payment.to_dict() for payment in payments]
        finally:
            db.close()
