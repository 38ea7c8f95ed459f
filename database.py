"""
Relational store for users, trips and itinerary versions (SQLAlchemy).

SQLite by default, PostgreSQL via DATABASE_URL; structured fields
(destinations, preferences, items) live in JSON columns on both.
"""
from datetime import datetime
import uuid

from sqlalchemy import (
    create_engine, Column, String, Integer, Float, DateTime, Text, ForeignKey, JSON,
    UniqueConstraint, func,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.pool import StaticPool

Base = declarative_base()

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)


def generate_id():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_id)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    full_name = Column(String)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    trips = relationship("Trip", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "fullName": self.full_name,
            "avatarUrl": self.avatar_url,
        }


class Trip(Base):
    __tablename__ = "trips"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title = Column(String)
    description = Column(Text)
    original_request = Column(Text, nullable=False)
    status = Column(String, default="planning")  # planning, booked, completed, cancelled
    start_date = Column(String, nullable=True)  # YYYY-MM-DD
    end_date = Column(String, nullable=True)
    duration_days = Column(Integer, nullable=True)
    travelers_count = Column(Integer, default=1)
    destinations = Column(JSON, default=list)  # ["Lisbon"] or [{"name": ..., "country": ...}]
    preferences = Column(JSON, default=dict)  # interests, accommodationType, travelStyle, budget
    special_requirements = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="trips")
    itineraries = relationship("Itinerary", back_populates="trip", cascade="all, delete-orphan",
                               order_by="Itinerary.version")

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "originalRequest": self.original_request,
            "status": self.status,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "durationDays": self.duration_days,
            "travelersCount": self.travelers_count,
            "destinations": self.destinations or [],
            "preferences": self.preferences or {},
            "specialRequirements": self.special_requirements,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Itinerary(Base):
    __tablename__ = "itineraries"
    __table_args__ = (UniqueConstraint("trip_id", "version", name="uq_itinerary_trip_version"),)

    id = Column(String, primary_key=True, default=generate_id)
    trip_id = Column(String, ForeignKey("trips.id", ondelete="CASCADE"), index=True)
    version = Column(Integer, nullable=False, default=1)
    status = Column(String, default="draft")  # draft, confirmed, modified
    items = Column(JSON, default=list)
    total_cost = Column(Float, default=0)
    ai_suggestions = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    trip = relationship("Trip", back_populates="itineraries")

    def to_dict(self):
        return {
            "id": self.id,
            "tripId": self.trip_id,
            "version": self.version,
            "status": self.status,
            "items": self.items or [],
            "totalCost": self.total_cost,
            "aiSuggestions": self.ai_suggestions or {},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


def init_db(database_url):
    """Create the engine, bind the session factory and create missing tables."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(database_url, pool_pre_ping=True)

    Base.metadata.create_all(bind=engine)
    SessionLocal.configure(bind=engine)
    return engine


def get_db():
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_user_by_email(db, email):
    return db.query(User).filter(User.email == email).first()


def get_user_trip(db, trip_id, user_id):
    return db.query(Trip).filter(Trip.id == trip_id, Trip.user_id == user_id).first()


def list_user_trips(db, user_id):
    return db.query(Trip).filter(Trip.user_id == user_id).order_by(Trip.created_at.desc()).all()


def latest_itinerary(db, trip_id):
    return (
        db.query(Itinerary)
        .filter(Itinerary.trip_id == trip_id)
        .order_by(Itinerary.version.desc())
        .first()
    )


def next_itinerary_version(db, trip_id):
    current = db.query(func.max(Itinerary.version)).filter(Itinerary.trip_id == trip_id).scalar()
    return (current or 0) + 1


def save_itinerary(db, assembled):
    """Insert one fully assembled itinerary version in a single commit."""
    itinerary = Itinerary(
        trip_id=assembled.trip_id,
        version=assembled.version,
        status=assembled.status,
        items=assembled.items,
        total_cost=assembled.total_cost,
        ai_suggestions=assembled.ai_suggestions,
    )
    db.add(itinerary)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(itinerary)
    return itinerary


def delete_trip(db, trip):
    """Delete a trip; its itineraries go with it."""
    db.delete(trip)
    db.commit()
