"""
FastAPI backend: phonebook REST API over a CardDAV server.
Run with uvicorn: uvicorn api.main:app --reload
"""

import logging
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root (when run from repo root or from Docker)
for path in (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path.cwd() / ".env",
):
    if path.exists():
        load_dotenv(path)
        break

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from phonebook.application import (
    AccessDenied,
    BackgroundSync,
    ContactListing,
    ContactSourceError,
    PhonebookService,
    SyncStatus,
)
from phonebook.config import Settings
from phonebook.domain import Contact
from phonebook.infrastructure import (
    CardDAVClient,
    DemoContactSource,
    InMemoryContactCache,
)

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _build_service(settings: Settings) -> tuple[PhonebookService, CardDAVClient | None]:
    cache = InMemoryContactCache(ttl_seconds=settings.cache_ttl_seconds)
    demo = DemoContactSource(settings.allowed_books, phone_region=settings.phone_region)
    if not settings.configured:
        logger.warning("CardDAV configuration incomplete - using demo mode")
        service = PhonebookService(
            demo, cache, allowed_books=settings.allowed_books, demo=True
        )
        return service, None
    logger.info("CardDAV configured - using real address books at %s", settings.server_url)
    client = CardDAVClient(
        settings.server_url,
        settings.username,
        settings.password,
        timeout=settings.request_timeout,
        batch_size=settings.batch_size,
        phone_region=settings.phone_region,
    )
    service = PhonebookService(
        client,
        cache,
        allowed_books=settings.allowed_books,
        fallback=demo if settings.demo_fallback else None,
    )
    return service, client


def _get_settings(app: FastAPI) -> Settings:
    if getattr(app.state, "settings", None) is None:
        app.state.settings = Settings.from_env()
    return app.state.settings


def get_service(app: FastAPI) -> PhonebookService:
    if getattr(app.state, "service", None) is None:
        app.state.service, app.state.carddav = _build_service(_get_settings(app))
    return app.state.service


def get_sync(app: FastAPI) -> BackgroundSync:
    if getattr(app.state, "sync", None) is None:
        app.state.sync = BackgroundSync(
            get_service(app),
            interval_minutes=_get_settings(app).sync_interval_minutes,
        )
    return app.state.sync


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = _get_settings(app)
    try:
        if settings.background_sync:
            get_sync(app).start()
        yield
    finally:
        if getattr(app.state, "sync", None) is not None:
            app.state.sync.stop()
        if getattr(app.state, "carddav", None) is not None:
            app.state.carddav.close()


app = FastAPI(title="Phonebook API", lifespan=lifespan)


# --- response models ---


class PhoneItem(BaseModel):
    type: str
    number: str


class AddressItem(BaseModel):
    street: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None
    full: str | None = None


class ContactItem(BaseModel):
    id: str
    name: str
    email: str | None = None
    emails: list[str] = []
    phone: str | None = None
    phones: list[PhoneItem] = []
    company: str | None = None
    title: str | None = None
    address: AddressItem | None = None
    website: str | None = None
    birthday: str | None = None
    notes: str | None = None
    address_book: str | None = None
    url: str | None = None
    etag: str | None = None


class ContactsResponse(BaseModel):
    contacts: list[ContactItem]
    total: int
    filtered: int
    source: str
    address_books: list[str] = []
    address_book: str | None = None


class AddressBookItem(BaseModel):
    name: str
    url: str | None = None
    description: str | None = None
    count: int | None = None


class SyncStatusItem(BaseModel):
    initialized: bool = True
    is_running: bool
    interval_minutes: float | None = None
    last_sync_at: str | None = None
    last_synced: dict[str, int] = {}
    last_error: str | None = None


class SyncRequest(BaseModel):
    action: str
    interval_minutes: float | None = None


class CacheEntryItem(BaseModel):
    contact_count: int
    age: str


def _contact_item(c: Contact) -> ContactItem:
    address = None
    if c.address is not None:
        address = AddressItem(
            street=c.address.street,
            city=c.address.city,
            postal_code=c.address.postal_code,
            country=c.address.country,
            full=c.address.full,
        )
    return ContactItem(
        id=c.id,
        name=c.name,
        email=c.email,
        emails=list(c.emails),
        phone=c.phone,
        phones=[PhoneItem(type=p.type, number=p.number) for p in c.phones],
        company=c.company,
        title=c.title,
        address=address,
        website=c.website,
        birthday=c.birthday,
        notes=c.notes,
        address_book=c.address_book,
        url=c.url,
        etag=c.etag,
    )


def _sync_status_item(s: SyncStatus) -> SyncStatusItem:
    return SyncStatusItem(
        is_running=s.is_running,
        interval_minutes=s.interval_minutes,
        last_sync_at=s.last_sync_at.isoformat() if s.last_sync_at else None,
        last_synced=s.last_synced,
        last_error=s.last_error,
    )


# --- REST: health ---


@app.get("/health")
def health():
    return {"status": "ok"}


# --- REST: address books and contacts ---


@app.get("/api/address-books")
def list_address_books(request: Request):
    service = get_service(request.app)
    try:
        books = service.address_books()
    except ContactSourceError as e:
        logger.error("Failed to load address books: %s", e)
        return JSONResponse(
            content={"error": "Failed to load address books", "details": str(e)},
            status_code=500,
        )
    return [
        AddressBookItem(
            name=b.display_name,
            url=b.url,
            description=b.description,
            count=b.contact_count,
        )
        for b in books
    ]


@app.get("/api/contacts", response_model=ContactsResponse)
def get_contacts(
    request: Request,
    response: Response,
    search: str = "",
    address_book: str = Query("", alias="addressBook"),
):
    service = get_service(request.app)
    search = search.strip()
    address_book = address_book.strip()
    logger.info("API request - search: %r, address book: %r", search, address_book)
    try:
        if address_book:
            result = service.search_contacts(address_book, search)
        else:
            result = service.search_all(search)
    except ContactSourceError as e:
        logger.error("Failed to load contacts: %s", e)
        return JSONResponse(
            content={"error": "Failed to load contacts", "details": str(e)},
            status_code=500,
        )
    if isinstance(result, AccessDenied):
        raise HTTPException(
            status_code=403,
            detail=f"Access to address book {result.address_book!r} is not allowed",
        )
    if not isinstance(result, ContactListing):
        raise HTTPException(status_code=500, detail="Unexpected result")

    response.headers.update(NO_CACHE_HEADERS)
    logger.info("API response: %d of %d contacts", result.filtered, result.total)
    return ContactsResponse(
        contacts=[_contact_item(c) for c in result.contacts],
        total=result.total,
        filtered=result.filtered,
        source=service.source_label,
        address_books=result.address_books,
        address_book=address_book or None,
    )


# --- REST: background sync ---


@app.get("/api/background-sync")
def background_sync_status(request: Request):
    sync = getattr(request.app.state, "sync", None)
    if sync is None:
        return {
            "success": True,
            "status": SyncStatusItem(initialized=False, is_running=False),
        }
    return {"success": True, "status": _sync_status_item(sync.status())}


@app.post("/api/background-sync")
def control_background_sync(body: SyncRequest, request: Request):
    action = (body.action or "").strip().lower()
    if action not in ("start", "stop", "status"):
        raise HTTPException(
            status_code=400, detail="Invalid action. Use: start, stop or status"
        )
    sync = get_sync(request.app)
    message = None
    if action == "start":
        try:
            started = sync.start(body.interval_minutes)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        interval = sync.status().interval_minutes
        message = (
            f"Background sync started (every {interval:g} minutes)"
            if started
            else "Background sync already running"
        )
    elif action == "stop":
        sync.stop()
        message = "Background sync stopped"
    return {
        "success": True,
        "message": message,
        "status": _sync_status_item(sync.status()),
    }


# --- REST: cache ---


@app.get("/api/cache")
def cache_status(request: Request):
    service = get_service(request.app)
    return {
        name: CacheEntryItem(contact_count=s.contact_count, age=s.age)
        for name, s in service.cache_status().items()
    }


@app.delete("/api/cache")
def clear_cache(
    request: Request,
    address_book: str = Query("", alias="addressBook"),
):
    service = get_service(request.app)
    service.clear_cache(address_book.strip() or None)
    return {"success": True}


# --- REST: debug ---


@app.get("/api/debug")
def debug(request: Request):
    """Connection check: configuration summary, books, and a sample of the first book."""
    settings = _get_settings(request.app)
    service = get_service(request.app)
    environment = {
        "server_url": settings.server_url,
        "username": settings.username,
        "password_set": bool(settings.password),
        "allowed_address_books": list(settings.allowed_books),
        "demo_mode": not settings.configured,
    }
    try:
        books = service.address_books()
        contacts: list[Contact] = []
        if books:
            listing = service.list_contacts(books[0].display_name)
            if isinstance(listing, ContactListing):
                contacts = listing.contacts
    except ContactSourceError as e:
        logger.error("Debug check failed: %s", e)
        return JSONResponse(
            content={"success": False, "error": str(e), "environment": environment},
            status_code=500,
        )
    return {
        "success": True,
        "contacts_count": len(contacts),
        "contacts": [_contact_item(c) for c in contacts[:3]],
        "address_books": [{"name": b.display_name, "url": b.url} for b in books],
        "environment": environment,
    }
