import logging
import secrets
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from passlib.context import CryptContext
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from database import Storage, map_category, map_document, map_user
from insights import read_insights, upsert_insights
from schemas import (
    GalleryEventCreate,
    GalleryEventUpdate,
    InsightsUpsertPayload,
    LoginPayload,
    TeamMemberCreate,
    TeamMemberUpdate,
    UserCreate,
    UserManualCreate,
    UserManualUpdate,
    UserUpdate,
)
from validation import is_valid_object_id, is_valid_password, is_valid_username

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"value": "workshop", "label": "Workshop"},
    {"value": "conference", "label": "Conference"},
    {"value": "seminar", "label": "Seminar"},
]

LISTING_SORT = [("order", ASCENDING), ("createdAt", DESCENDING)]

router = APIRouter()


# Dependencies
def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_pwd_context(request: Request) -> CryptContext:
    return request.app.state.pwd_context


def require_insights_token(request: Request):
    """Static bearer gate for the insights upsert; disabled when no token is configured."""
    expected = request.app.state.settings.platform_insights_token
    if not expected:
        return
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        token.strip().encode(), expected.encode()
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")


# Helpers
def _now() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def storage_errors(route: str, message: str):
    try:
        yield
    except PyMongoError:
        logger.exception("%s error", route)
        raise HTTPException(status_code=500, detail=message)


def _object_id(value: str) -> ObjectId:
    if not is_valid_object_id(value):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(value)


def _update_by_id(collection: Collection, doc_id: ObjectId, updates: dict, not_found: str) -> dict:
    doc = collection.find_one_and_update(
        {"_id": doc_id},
        {"$set": {**updates, "updatedAt": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise HTTPException(status_code=404, detail=not_found)
    return {"success": True, "data": map_document(doc)}


def _delete_by_id(collection: Collection, doc_id: ObjectId, not_found: str) -> dict:
    result = collection.delete_one({"_id": doc_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail=not_found)
    return {"success": True, "deleted": 1}


def _insert(collection: Collection, doc: dict) -> dict:
    now = _now()
    doc.update({"createdAt": now, "updatedAt": now})
    doc["_id"] = collection.insert_one(doc).inserted_id
    return {"success": True, "data": map_document(doc)}


# Health
@router.get("/health")
def health(storage: Storage = Depends(get_storage)):
    try:
        storage.ping()
    except PyMongoError as e:
        logger.error("Health check failed: %s", e)
        return JSONResponse(status_code=500, content={"status": "error", "error": str(e)})
    return {"status": "ok", "database": "connected", "timestamp": _now().isoformat()}


# Platform insights
@router.get("/admin-services/public/platform-insights/")
def get_platform_insights(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /public/platform-insights", "Failed to fetch public insights"):
        return read_insights(storage.insights)


@router.post(
    "/admin-services/platform-insights/cache-upsert",
    dependencies=[Depends(require_insights_token)],
)
def upsert_platform_insights(
    payload: Optional[InsightsUpsertPayload] = None,
    storage: Storage = Depends(get_storage),
):
    payload = payload or InsightsUpsertPayload()
    with storage_errors("POST /platform-insights/cache-upsert", "Failed to upsert public insights"):
        state, updated = upsert_insights(
            storage.insights, payload.total_users, payload.total_publications
        )
    return {"success": True, "updated": updated, "data": state}


# Gallery events
@router.get("/admin-services/gallery-events/")
def list_events(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /gallery-events", "Failed to fetch events"):
        docs = storage.events.find({}).sort("createdAt", DESCENDING)
        return [map_document(d) for d in docs]


@router.post("/admin-services/gallery-events/", status_code=201)
def create_event(payload: GalleryEventCreate, storage: Storage = Depends(get_storage)):
    if not payload.title:
        raise HTTPException(status_code=400, detail="title is required")
    doc = {
        "title": payload.title,
        "description": payload.description or "",
        "date": payload.date or "",
        "end_date": payload.end_date or None,
        "location": payload.location or "",
        "images": payload.images or [],
        "category": payload.category or "",
        "link": payload.link or "",
        "status": payload.status or "",
    }
    if payload.attendees is not None:
        doc["attendees"] = payload.attendees
    with storage_errors("POST /gallery-events", "Failed to create event"):
        return _insert(storage.events, doc)


@router.put("/admin-services/gallery-events/{event_id}")
def update_event(event_id: str, payload: GalleryEventUpdate, storage: Storage = Depends(get_storage)):
    oid = _object_id(event_id)
    with storage_errors("PUT /gallery-events/:id", "Failed to update event"):
        return _update_by_id(
            storage.events, oid, payload.model_dump(exclude_unset=True), "Event not found"
        )


@router.delete("/admin-services/gallery-events/{event_id}")
def delete_event(event_id: str, storage: Storage = Depends(get_storage)):
    oid = _object_id(event_id)
    with storage_errors("DELETE /gallery-events/:id", "Failed to delete event"):
        return _delete_by_id(storage.events, oid, "Event not found")


# Categories
@router.get("/admin-services/events/categories/")
def list_categories(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /events/categories", "Failed to fetch categories"):
        docs = list(storage.categories.find({}).sort([("order", ASCENDING), ("label", ASCENDING)]))
    if not docs:
        return [dict(c) for c in DEFAULT_CATEGORIES]
    return [map_category(d) for d in docs]


# Team members
@router.get("/admin-services/team-members/")
def list_team_members(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /team-members", "Failed to fetch team members"):
        return [map_document(d) for d in storage.team_members.find({}).sort(LISTING_SORT)]


@router.get("/admin-services/public/team-members/")
def list_public_team_members(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /public/team-members", "Failed to fetch team members"):
        docs = storage.team_members.find({"published": True}).sort(LISTING_SORT)
        return [map_document(d) for d in docs]


@router.post("/admin-services/team-members/", status_code=201)
def create_team_member(payload: TeamMemberCreate, storage: Storage = Depends(get_storage)):
    if not payload.name:
        raise HTTPException(status_code=400, detail="name is required")
    doc = {
        "name": payload.name,
        "affiliation": payload.affiliation or "",
        "position1": payload.position1 or "",
        "position2": payload.position2 or "",
        "avatar_url": payload.avatar_url or "",
        "scholar_url": payload.scholar_url or "",
        "linkedin_url": payload.linkedin_url or "",
        "position1_link": payload.position1_link or "",
        "position2_link": payload.position2_link or "",
        "affiliation_link": payload.affiliation_link or "",
        "order": payload.order,
        "published": bool(payload.published),
    }
    with storage_errors("POST /team-members", "Failed to create team member"):
        return _insert(storage.team_members, doc)


@router.put("/admin-services/team-members/{member_id}")
def update_team_member(member_id: str, payload: TeamMemberUpdate, storage: Storage = Depends(get_storage)):
    oid = _object_id(member_id)
    with storage_errors("PUT /team-members/:id", "Failed to update team member"):
        return _update_by_id(
            storage.team_members, oid, payload.model_dump(exclude_unset=True), "Team member not found"
        )


@router.delete("/admin-services/team-members/{member_id}")
def delete_team_member(member_id: str, storage: Storage = Depends(get_storage)):
    oid = _object_id(member_id)
    with storage_errors("DELETE /team-members/:id", "Failed to delete team member"):
        return _delete_by_id(storage.team_members, oid, "Team member not found")


# User manuals
@router.get("/admin-services/user-manuals/")
def list_manuals(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /user-manuals", "Failed to fetch manuals"):
        return [map_document(d) for d in storage.manuals.find({}).sort(LISTING_SORT)]


@router.get("/admin-services/public/user-manuals/")
def list_public_manuals(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /public/user-manuals", "Failed to fetch manuals"):
        docs = storage.manuals.find({"published": True}).sort(LISTING_SORT)
        return [map_document(d) for d in docs]


@router.post("/admin-services/user-manuals/", status_code=201)
def create_manual(payload: UserManualCreate, storage: Storage = Depends(get_storage)):
    if not payload.title:
        raise HTTPException(status_code=400, detail="title is required")
    doc = {
        "title": payload.title,
        "description": payload.description or "",
        "video_url": payload.video_url or "",
        "thumbnail_url": payload.thumbnail_url or "",
        "manual_pdf_url": payload.manual_pdf_url or "",
        "order": payload.order,
        "published": bool(payload.published),
    }
    with storage_errors("POST /user-manuals", "Failed to create manual"):
        return _insert(storage.manuals, doc)


@router.put("/admin-services/user-manuals/{manual_id}")
def update_manual(manual_id: str, payload: UserManualUpdate, storage: Storage = Depends(get_storage)):
    oid = _object_id(manual_id)
    with storage_errors("PUT /user-manuals/:id", "Failed to update manual"):
        return _update_by_id(
            storage.manuals, oid, payload.model_dump(exclude_unset=True), "Manual not found"
        )


@router.delete("/admin-services/user-manuals/{manual_id}")
def delete_manual(manual_id: str, storage: Storage = Depends(get_storage)):
    oid = _object_id(manual_id)
    with storage_errors("DELETE /user-manuals/:id", "Failed to delete manual"):
        return _delete_by_id(storage.manuals, oid, "Manual not found")


# Users
@router.get("/admin-services/users/")
def list_users(storage: Storage = Depends(get_storage)):
    with storage_errors("GET /users", "Failed to fetch users"):
        return [map_user(d) for d in storage.users.find({}).sort("createdAt", DESCENDING)]


@router.post("/admin-services/users/", status_code=201)
def create_user(
    payload: UserCreate,
    storage: Storage = Depends(get_storage),
    pwd_context: CryptContext = Depends(get_pwd_context),
):
    if not is_valid_username(payload.username):
        raise HTTPException(status_code=400, detail="Invalid username")
    if not is_valid_password(payload.password):
        raise HTTPException(status_code=400, detail="Invalid password (min 8 chars)")
    now = _now()
    user_doc = {
        "username": payload.username,
        "passwordHash": pwd_context.hash(payload.password),
        "createdAt": now,
        "updatedAt": now,
    }
    with storage_errors("POST /users", "Failed to create user"):
        try:
            user_doc["_id"] = storage.users.insert_one(user_doc).inserted_id
        except DuplicateKeyError:
            raise HTTPException(status_code=409, detail="Username already exists")
    return {"success": True, "data": map_user(user_doc)}


@router.put("/admin-services/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    storage: Storage = Depends(get_storage),
    pwd_context: CryptContext = Depends(get_pwd_context),
):
    oid = _object_id(user_id)
    provided = payload.model_fields_set
    updates = {"updatedAt": _now()}
    if "username" in provided:
        if not is_valid_username(payload.username):
            raise HTTPException(status_code=400, detail="Invalid username")
        updates["username"] = payload.username
    # An empty password means "keep the current one"
    if "password" in provided and payload.password != "":
        if not is_valid_password(payload.password):
            raise HTTPException(status_code=400, detail="Invalid password (min 8 chars)")
        updates["passwordHash"] = pwd_context.hash(payload.password)

    with storage_errors("PUT /users/:id", "Failed to update user"):
        try:
            doc = storage.users.find_one_and_update(
                {"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise HTTPException(status_code=409, detail="Username already exists")
    if not doc:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": map_user(doc)}


@router.delete("/admin-services/users/{user_id}")
def delete_user(user_id: str, storage: Storage = Depends(get_storage)):
    oid = _object_id(user_id)
    with storage_errors("DELETE /users/:id", "Failed to delete user"):
        return _delete_by_id(storage.users, oid, "User not found")


@router.post("/admin-services/users/login")
def login(
    payload: LoginPayload,
    storage: Storage = Depends(get_storage),
    pwd_context: CryptContext = Depends(get_pwd_context),
):
    if payload.username is None or payload.password is None:
        raise HTTPException(status_code=400, detail="username and password are required")
    with storage_errors("POST /users/login", "Failed to login"):
        user = storage.users.find_one({"username": payload.username})
    # Unknown user and wrong password must look the same to the caller
    if not user or not user.get("passwordHash"):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    try:
        ok = pwd_context.verify(payload.password, user["passwordHash"])
    except (ValueError, TypeError):
        logger.warning("Unreadable password hash for user %s", user.get("_id"))
        ok = False
    if not ok:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"success": True, "data": map_user(user)}


# Error rendering: every error body is {"error": <message>}
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    msg = first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"error": f"{loc}: {msg}" if loc else msg})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(storage: Optional[Storage] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API.

    With no storage given, the app connects to MongoDB at startup (fatal on
    failure) and closes the client at shutdown. An injected storage is used
    as-is and left open.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.storage is None
        if owned:
            try:
                connected = Storage.from_settings(settings)
                connected.ping()
                connected.ensure_indexes()
            except (RuntimeError, PyMongoError) as e:
                logger.critical("Failed to connect to MongoDB: %s", e)
                raise
            app.state.storage = connected
            logger.info("Connected to MongoDB database: %s", settings.db_name)
        try:
            yield
        finally:
            if owned and app.state.storage is not None:
                app.state.storage.close()
                app.state.storage = None

    app = FastAPI(title="MetaInfoSci Admin Services API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.state.settings = settings
    app.state.pwd_context = CryptContext(
        schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds
    )
    app.state.storage = storage
    if storage is not None:
        storage.ensure_indexes()

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
