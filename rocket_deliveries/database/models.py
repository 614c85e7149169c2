"""SQLAlchemy database models for pilots, rides, passengers and financings."""
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Uuid,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, selectinload
from werkzeug.security import check_password_hash, generate_password_hash

PILOT_TYPES = ("individual", "company")
FINANCING_STATUSES = ("undelivered", "delivered", "accepted", "completed", "expired")

RECENT_RIDES_WINDOW = timedelta(days=7)


def utcnow() -> datetime:
    """Timezone-aware current time in UTC, used for all timestamps."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Pilot(Base):
    """
    Delivery pilot account.

    The password is only ever stored as a hash. ``stripe_verified`` moves from
    False to True once Stripe reports the connected account as verified and is
    never reset.
    """

    __tablename__ = "pilots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="individual")
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    business_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="US")
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_account_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    stripe_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("type IN ('individual', 'company')", name="valid_pilot_type"),
    )

    def set_password(self, password: str) -> None:
        """Store a salted hash of ``password``; the plain text is never kept."""
        self.password_hash = generate_password_hash(password)

    def validate_password(self, password: str) -> bool:
        """Check ``password`` against the stored hash."""
        return check_password_hash(self.password_hash, password)

    def set_type(self, pilot_type: str) -> None:
        """Switch pilot type, blanking the name fields that no longer apply."""
        if pilot_type not in PILOT_TYPES:
            raise ValueError(f"Unknown pilot type: {pilot_type}")
        if pilot_type == self.type:
            return
        self.type = pilot_type
        if pilot_type == "individual":
            self.business_name = None
        else:
            self.first_name = None
            self.last_name = None

    @property
    def display_name(self) -> str:
        """Business name for companies, first and last name for individuals."""
        if self.type == "company":
            return self.business_name or ""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def profile_complete(self) -> bool:
        """Whether the names required for the pilot's type are filled in."""
        if self.type == "individual":
            return bool(self.first_name and self.last_name)
        return bool(self.business_name)

    async def list_recent_rides(self, db: AsyncSession) -> List["Ride"]:
        """Rides from the past week, newest first, with passengers loaded."""
        since = utcnow() - RECENT_RIDES_WINDOW
        result = await db.execute(
            select(Ride)
            .where(Ride.pilot_id == self.id, Ride.created >= since)
            .options(selectinload(Ride.passenger))
            .order_by(Ride.created.desc())
        )
        return list(result.scalars().all())

    def __repr__(self) -> str:
        """String representation of Pilot."""
        return f"<Pilot(id={self.id}, email={self.email}, type={self.type})>"


class Passenger(Base):
    """Counterparty used to populate simulated rides."""

    __tablename__ = "passengers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def display_name(self) -> str:
        """Passenger full name as shown on the rides list."""
        return f"{self.first_name} {self.last_name}"

    @classmethod
    async def insert_defaults(cls, db: AsyncSession) -> None:
        db.add_all(
            cls(first_name=first, last_name=last, email=email)
            for first, last, email in DEFAULT_PASSENGERS
        )
        await db.flush()

    @classmethod
    async def get_random(cls, db: AsyncSession) -> "Passenger":
        """Pick a passenger uniformly at random, seeding defaults on an empty table."""
        count = (await db.execute(select(func.count(cls.id)))).scalar_one()
        if count == 0:
            await cls.insert_defaults(db)
            count = len(DEFAULT_PASSENGERS)
        offset = random.randrange(count)
        result = await db.execute(select(cls).order_by(cls.created, cls.id).offset(offset).limit(1))
        return result.scalar_one()

    def __repr__(self) -> str:
        """String representation of Passenger."""
        return f"<Passenger(id={self.id}, name={self.display_name})>"


DEFAULT_PASSENGERS = [
    ("Jenny", "Rosen", "jenny.rosen@example.com"),
    ("Christina", "Miller", "christina.miller@example.com"),
    ("Anaïs", "Dupont", "anais.dupont@example.com"),
    ("Kenji", "Tanaka", "kenji.tanaka@example.com"),
    ("Maria", "Gonzalez", "maria.gonzalez@example.com"),
    ("Oliver", "Smith", "oliver.smith@example.com"),
    ("Priya", "Patel", "priya.patel@example.com"),
    ("Lukas", "Schmidt", "lukas.schmidt@example.com"),
]


class Ride(Base):
    """
    Simulated delivery ride.

    Amounts are in minor currency units. The pilot receives 80% of the amount,
    rounded down; the platform keeps the rest.
    """

    __tablename__ = "rides"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pilot_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("pilots.id"), nullable=False, index=True)
    passenger_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("passengers.id"), nullable=False)
    origin: Mapped[str] = mapped_column(String(255), nullable=False, default="Rocket Deliveries HQ")
    destination: Mapped[str] = mapped_column(String(255), nullable=False, default="Golden Gate Bridge")
    pickup_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    dropoff_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: utcnow() + timedelta(minutes=random.randrange(10)),
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    stripe_charge_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    passenger: Mapped[Passenger] = relationship(lazy="raise")

    __table_args__ = (CheckConstraint("amount > 0", name="positive_ride_amount"),)

    def amount_for_pilot(self) -> int:
        return self.amount * 8 // 10

    def platform_fee(self) -> int:
        return self.amount - self.amount_for_pilot()

    def __repr__(self) -> str:
        """String representation of Ride."""
        return f"<Ride(id={self.id}, pilot_id={self.pilot_id}, amount={self.amount})>"


class Financing(Base):
    """
    Financing offer made to a pilot through Stripe Capital.

    Status only moves forward: undelivered -> delivered -> accepted -> completed,
    with expiry possible from any non-terminal state.
    """

    __tablename__ = "financings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pilot_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("pilots.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="undelivered")
    stripe_financing_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('undelivered', 'delivered', 'accepted', 'completed', 'expired')",
            name="valid_financing_status",
        ),
    )

    def __repr__(self) -> str:
        """String representation of Financing."""
        return f"<Financing(id={self.id}, pilot_id={self.pilot_id}, status={self.status})>"
