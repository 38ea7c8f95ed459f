"""FastAPI backend - AI trip planner (trips, itineraries, auth)"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from config import Settings
from database import (
    SessionLocal, Trip, User, init_db, get_db, get_user_by_email, get_user_trip,
    list_user_trips, latest_itinerary, delete_trip as delete_trip_row,
)
from errors import AuthError, ConflictError, InvalidToken, NotFoundError, PlannerError, UpstreamError, ValidationError
from planner.assembler import total_cost
from planner.generation import GenerationQueue, ItineraryGenerator
from planner.llm_client import LLMClient
from planner.trip_parser import FallbackTripParser, LLMTripParser, PatternTripParser, merge_trip_fields

logger = logging.getLogger(__name__)

# Security
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# Pydantic models
class RegisterRequest(BaseModel):
    email: str
    password: str
    fullName: str


class LoginRequest(BaseModel):
    email: str
    password: str


class BudgetRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class TripPreferences(BaseModel):
    budget: Optional[BudgetRange] = None
    travelersCount: Optional[int] = Field(default=None, ge=1)
    interests: List[str] = []
    accommodationType: Optional[Literal["budget", "mid-range", "luxury"]] = None
    travelStyle: Optional[Literal["relaxed", "moderate", "packed"]] = None


class TripCreate(BaseModel):
    request: str = ""
    preferences: Optional[TripPreferences] = None


class TripUpdate(BaseModel):
    title: Optional[str] = None
    status: Optional[Literal["planning", "booked", "completed", "cancelled"]] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class RegenerateRequest(BaseModel):
    feedback: Optional[str] = None


class ItineraryItemUpdate(BaseModel):
    time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    type: Optional[Literal["flight", "hotel", "activity", "meal", "transportation", "free-time"]] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    price: Optional[float] = Field(default=None, ge=0)
    bookingRequired: Optional[bool] = None
    bookingStatus: Optional[Literal["pending", "booked", "confirmed"]] = None


TRIP_SUGGESTIONS = [
    "Consider visiting during {dest} best season",
    "Book accommodations in central locations for easy access to attractions",
    "Try local cuisine at highly-rated restaurants",
]


# Helper functions
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User, settings: Settings) -> str:
    expire = datetime.utcnow() + timedelta(minutes=settings.jwt_expire_minutes)
    to_encode = {"userId": user.id, "email": user.email, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user_id(
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Verify the bearer token and return the user id it was issued for."""
    if not token:
        raise AuthError("No authorization token provided")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise InvalidToken("Token has expired")
    except JWTError:
        raise InvalidToken("Invalid or expired token")

    user_id = payload.get("userId")
    if not user_id:
        raise InvalidToken("Invalid or expired token")
    return user_id


def _owned_trip(db, trip_id: str, user_id: str) -> Trip:
    trip = get_user_trip(db, trip_id, user_id)
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def _auth_response(user: User, settings: Settings) -> dict:
    return {"user": user.to_dict(), "token": create_access_token(user, settings)}


router = APIRouter(prefix="/api")


# Auth endpoints
@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db=Depends(get_db), settings: Settings = Depends(get_settings)):
    if not (body.email.strip() and body.password and body.fullName.strip()):
        raise ValidationError("Missing required fields: email, password, or fullName")

    if get_user_by_email(db, body.email):
        raise ConflictError("User with this email already exists")

    user = User(
        email=body.email.strip(),
        full_name=body.fullName.strip(),
        password_hash=hash_password(body.password),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email already exists")
    db.refresh(user)
    logger.info("Registered user %s", user.id)

    return _auth_response(user, settings)


@router.post("/auth/login")
def login(body: LoginRequest, db=Depends(get_db), settings: Settings = Depends(get_settings)):
    if not (body.email and body.password):
        raise ValidationError("Missing email or password")

    user = get_user_by_email(db, body.email.strip())
    if not user or not verify_password(body.password, user.password_hash):
        raise AuthError("Invalid email or password")

    return _auth_response(user, settings)


@router.get("/auth/me")
def me(user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user.to_dict()


# Trip endpoints
@router.get("/trips")
def get_trips(user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    return [t.to_dict() for t in list_user_trips(db, user_id)]


@router.post("/trips")
def create_trip(body: TripCreate, request: Request,
                user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    """Parse the free-text request, store the trip and queue itinerary generation."""
    text = body.request.strip()
    if not text:
        raise ValidationError("Trip request is required")

    fields = request.app.state.trip_parser.parse(text)
    preferences = body.preferences.model_dump(exclude_none=True) if body.preferences else None
    trip = Trip(user_id=user_id, **merge_trip_fields(fields, preferences, text))
    db.add(trip)
    db.commit()
    db.refresh(trip)
    logger.info("Created trip %s (destinations=%s, duration=%s)",
                trip.id, trip.destinations, trip.duration_days)

    # Generation runs on the worker channel; the client polls GET /itinerary/{id}
    request.app.state.generation_queue.submit(trip.id, user_id)

    names = fields.destination_names()
    dest = names[0] if names else None
    message = (
        f"Great! I've analyzed your trip request for {dest or 'your destination'}. "
        f"I'm creating a detailed {trip.duration_days or 3}-day itinerary with specific "
        f"attractions, restaurants, and activities."
    )
    suggestions = [s.format(dest=f"{dest}'s" if dest else "the destination's")
                   for s in TRIP_SUGGESTIONS]

    return {
        "success": True,
        "tripId": trip.id,
        "message": message,
        "suggestions": suggestions,
        "tripData": trip.to_dict(),
    }


@router.get("/trips/{trip_id}")
def get_trip(trip_id: str, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    return _owned_trip(db, trip_id, user_id).to_dict()


@router.put("/trips/{trip_id}")
def update_trip(trip_id: str, body: TripUpdate,
                user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    trip = _owned_trip(db, trip_id, user_id)
    changes = body.model_dump(exclude_unset=True)
    if "title" in changes and changes["title"]:
        trip.title = changes["title"]
    if "status" in changes and changes["status"]:
        trip.status = changes["status"]
    if "startDate" in changes:
        trip.start_date = changes["startDate"]
    if "endDate" in changes:
        trip.end_date = changes["endDate"]
    db.commit()
    db.refresh(trip)
    return trip.to_dict()


@router.delete("/trips/{trip_id}")
def delete_trip(trip_id: str, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    trip = _owned_trip(db, trip_id, user_id)
    delete_trip_row(db, trip)
    logger.info("Deleted trip %s", trip_id)
    return {"success": True, "message": "Trip deleted successfully"}


# Itinerary endpoints
@router.get("/itinerary/{trip_id}")
def get_itinerary(trip_id: str, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    _owned_trip(db, trip_id, user_id)
    itinerary = latest_itinerary(db, trip_id)
    if not itinerary:
        raise NotFoundError("Itinerary not found")
    return itinerary.to_dict()


@router.post("/itinerary/generate/{trip_id}")
def generate_itinerary(trip_id: str, request: Request,
                       user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    """Run the generation pipeline synchronously and return the new version."""
    trip = _owned_trip(db, trip_id, user_id)
    itinerary = request.app.state.generator.generate(db, trip)
    return {"success": True, "itinerary": itinerary.to_dict()}


@router.post("/itinerary/{trip_id}/regenerate")
def regenerate_itinerary(trip_id: str, request: Request, body: Optional[RegenerateRequest] = None,
                         user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    trip = _owned_trip(db, trip_id, user_id)
    feedback = body.feedback.strip() if body and body.feedback else None
    itinerary = request.app.state.generator.generate(db, trip, feedback=feedback)
    return {"success": True, "itinerary": itinerary.to_dict()}


@router.put("/itinerary/{trip_id}/items/{item_id}")
def update_itinerary_item(trip_id: str, item_id: str, body: ItineraryItemUpdate,
                          user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    """Edit one item of the latest itinerary version in place."""
    trip = _owned_trip(db, trip_id, user_id)
    itinerary = latest_itinerary(db, trip_id)
    if not itinerary:
        raise NotFoundError("Itinerary not found")

    changes = body.model_dump(exclude_unset=True)
    items = [dict(item) for item in itinerary.items or []]
    target = next((item for item in items if item.get("id") == item_id), None)
    if target is None:
        raise NotFoundError("Itinerary item not found")

    target.update(changes)
    if "bookingRequired" in changes and "bookingStatus" not in changes:
        target["bookingStatus"] = "pending" if target["bookingRequired"] else None

    # Reassign so SQLAlchemy sees the JSON column change
    itinerary.items = items
    itinerary.total_cost = total_cost(items, trip.travelers_count or 1)
    itinerary.status = "modified"
    db.commit()
    db.refresh(itinerary)
    return {"success": True, "item": target, "itinerary": itinerary.to_dict()}


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def _register_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(PlannerError)
    async def planner_error_handler(request: Request, exc: PlannerError):
        if isinstance(exc, UpstreamError):
            logger.error("Upstream failure on %s: %s (%s)", request.url.path, exc.message, exc.details)
        elif exc.status_code >= 500:
            logger.error("Request %s failed: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_payload(include_details=not settings.is_production),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) for e in errors} - {""})
        message = f"Invalid request fields: {', '.join(fields)}" if fields else "Invalid request body"
        return JSONResponse(status_code=400, content={"error": ValidationError.error, "message": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": PlannerError.error, "message": "An unexpected error occurred"},
        )


def create_app(settings: Optional[Settings] = None, llm_client=None,
               generation_queue=None) -> FastAPI:
    """Build the API.  Run with ``uvicorn main:create_app --factory``."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings = settings or Settings.from_env()
    init_db(settings.database_url)

    client = llm_client or LLMClient(settings)
    generator = ItineraryGenerator(client)
    queue = generation_queue or GenerationQueue(generator, SessionLocal, settings.generation_workers)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        queue.shutdown(wait=False)

    app = FastAPI(
        title="AI Trip Planner API",
        description="Natural-language trip requests turned into day-by-day itineraries",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.generator = generator
    app.state.generation_queue = queue
    app.state.trip_parser = FallbackTripParser(LLMTripParser(client), PatternTripParser())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app, settings)
    app.include_router(router)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "message": "Travel Guide Backend API"}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=3001)
