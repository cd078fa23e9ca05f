# --- Imports ---
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import accounts, cart, catalog, orders, reports, schemas
from .config import get_settings
from .database import Base, engine, get_db
from .errors import (
    BookstoreError,
    CredentialError,
    InsufficientStockError,
    NotFoundError,
    StateError,
    StorageError,
    ValidationError,
)
from .identity import parse_payment_form
from .logging_config import configure_logging
from .messaging.bus import build_publisher
from .sessions import CUSTOMER, DEFAULT_OWNER, OWNER, SessionIdentity, SessionStore

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "bookstore_session"

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables defined in models.py if they don't exist
    configure_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    yield
    if app.state.publisher is not None:
        app.state.publisher.close()


# --- App Instance ---
app = FastAPI(title="Bookstore", lifespan=lifespan)
app.state.sessions = SessionStore(ttl=timedelta(days=settings.session_ttl_days))
app.state.publisher = build_publisher(settings)


# --- Error Mapping ---
def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), **extra})


@app.exception_handler(BookstoreError)
async def bookstore_error_handler(request: Request, exc: BookstoreError):
    if isinstance(exc, InsufficientStockError):
        return _error(409, exc, isbn=exc.isbn)
    if isinstance(exc, ValidationError):
        return _error(422, exc)
    if isinstance(exc, NotFoundError):
        return _error(404, exc)
    if isinstance(exc, CredentialError):
        return _error(401, exc)
    if isinstance(exc, StateError):
        logger.critical("Invalid application state on %s %s: %s", request.method, request.url.path, exc)
        return _error(500, exc)
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return _error(503, "Storage unavailable")
    logger.error("Unhandled bookstore error on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, exc)


# --- Session Dependencies ---
def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_publisher(request: Request):
    return request.app.state.publisher


def current_identity(
    request: Request,
    x_session_token: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[SessionIdentity]:
    """Resolves the session token from the header or the cookie."""
    token = x_session_token or request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    entry = sessions.lookup_session(token)
    return entry[0] if entry else None


def current_customer(identity: Optional[SessionIdentity] = Depends(current_identity)) -> int:
    if identity is None or identity.kind != CUSTOMER:
        raise _forbidden()
    return identity.id


def current_owner(identity: Optional[SessionIdentity] = Depends(current_identity)) -> SessionIdentity:
    if identity is None or identity.kind not in (OWNER, DEFAULT_OWNER):
        raise _forbidden()
    return identity


def _forbidden():
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Login required")


def _start_session(response: Response, sessions: SessionStore, identity: SessionIdentity) -> str:
    token = sessions.issue(identity)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        httponly=True,
        max_age=int(sessions.ttl.total_seconds()),
    )
    return token


# --- Endpoints ---
@app.get("/")
def root():
    """Health check endpoint to confirm the bookstore is operational."""
    return {"message": "Bookstore service is running"}


@app.get("/books", response_model=List[schemas.BookWithPublisherName])
def list_books(search: schemas.BookSearch = Depends(), db: Session = Depends(get_db)):
    """Lists the catalog, filtered by the query parameters. Discontinued books are never shown."""
    return catalog.filter_books(db, search.model_copy(update={"show_discontinued": False}))


@app.get("/books/{isbn}", response_model=schemas.BookOut)
def get_book(isbn: int, db: Session = Depends(get_db)):
    return catalog.get_book(db, isbn)


@app.post("/register", status_code=status.HTTP_201_CREATED)
def register(req: schemas.RegisterRequest, db: Session = Depends(get_db)):
    customer_id = accounts.register_customer(db, req)
    return {"status": "ok", "customer_id": customer_id}


@app.post("/login")
def login(
    req: schemas.LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    customer_id = accounts.validate_customer_login(db, req.email, req.password)
    token = _start_session(response, sessions, SessionIdentity(kind=CUSTOMER, id=customer_id))
    return {"status": "ok", "token": token}


@app.post("/logout")
def logout(
    request: Request,
    response: Response,
    x_session_token: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_session_store),
):
    token = x_session_token or request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        sessions.revoke(token)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"status": "ok"}


@app.get("/customer", response_model=schemas.CustomerProfile)
def customer_page(customer_id: int = Depends(current_customer), db: Session = Depends(get_db)):
    return accounts.get_customer_info(db, customer_id)


# --- Cart ---
@app.put("/customer/cart/add/{isbn}")
def add_to_cart(isbn: int, customer_id: int = Depends(current_customer), db: Session = Depends(get_db)):
    cart.add_one(db, customer_id, isbn)
    return {"status": "ok"}


@app.put("/customer/cart/quantity/{isbn}/{quantity}")
def set_cart_quantity(
    isbn: int,
    quantity: int,
    customer_id: int = Depends(current_customer),
    db: Session = Depends(get_db),
):
    cart.set_quantity(db, customer_id, isbn, quantity)
    return {"status": "ok", "isbn": isbn, "quantity": quantity}


@app.get("/customer/cart", response_model=List[schemas.CartBook])
def get_cart(customer_id: int = Depends(current_customer), db: Session = Depends(get_db)):
    return cart.get_cart_books(db, customer_id)


# --- Orders ---
@app.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    req: schemas.CreateOrderRequest,
    customer_id: int = Depends(current_customer),
    db: Session = Depends(get_db),
    publisher=Depends(get_publisher),
):
    """
    Checks out the customer's cart.
    - Shipping and payment default to the customer's stored ones when omitted.
    - Responds 409 if any book lacks stock; nothing is changed in that case.
    """
    payment_info = parse_payment_form(req.payment_info) if req.payment_info else None
    order_id = orders.place_cart_order(
        db,
        customer_id,
        address=req.shipping_address,
        payment_info=payment_info,
        publisher=publisher,
    )
    return {"status": "created", "order_id": order_id}


@app.get("/orders", response_model=List[schemas.CensoredOrder])
def order_history(customer_id: int = Depends(current_customer), db: Session = Depends(get_db)):
    return [orders.censor_order(o) for o in orders.get_customer_orders_info(db, customer_id)]


@app.get("/orders/{order_id}", response_model=schemas.CensoredOrder)
def get_order(order_id: int, customer_id: int = Depends(current_customer), db: Session = Depends(get_db)):
    return orders.censor_order(orders.get_customer_order(db, customer_id, order_id))


# --- Owner ---
@app.post("/owner/login")
def owner_login(
    req: schemas.LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    identity = accounts.validate_owner_login(db, req.email, req.password)
    token = _start_session(response, sessions, identity)
    return {"status": "ok", "token": token, "kind": identity.kind}


@app.get("/owner/accounts", response_model=List[schemas.AccountOut])
def manage_accounts(owner: SessionIdentity = Depends(current_owner), db: Session = Depends(get_db)):
    return accounts.list_accounts(db)


@app.post("/owner/accounts", status_code=status.HTTP_201_CREATED)
def create_owner(
    req: schemas.OwnerCreate,
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
):
    owner_id = accounts.create_owner(db, req)
    return {"status": "ok", "owner_id": owner_id}


@app.delete("/owner/accounts/customer/{customer_id}")
def delete_customer(
    customer_id: int,
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    """Deletes a customer and logs them out. Their orders are kept."""
    accounts.delete_customer(db, customer_id)
    sessions.revoke_identity(SessionIdentity(kind=CUSTOMER, id=customer_id))
    return {"status": "ok"}


@app.delete("/owner/accounts/owner/{owner_id}")
def delete_owner(
    owner_id: int,
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    accounts.delete_owner(db, owner_id)
    sessions.revoke_identity(SessionIdentity(kind=OWNER, id=owner_id))
    return {"status": "ok"}


@app.get("/owner/publishers", response_model=List[schemas.PublisherOut])
def list_publishers(owner: SessionIdentity = Depends(current_owner), db: Session = Depends(get_db)):
    return catalog.list_publishers(db)


@app.post("/owner/publishers", status_code=status.HTTP_201_CREATED)
def create_publisher(
    req: schemas.PublisherCreate,
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
):
    publisher_id = catalog.create_publisher(db, req)
    return {"status": "ok", "publisher_id": publisher_id}


@app.get("/owner/books", response_model=List[schemas.BookWithPublisherName])
def book_management(
    search: schemas.BookSearch = Depends(),
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return catalog.filter_books(db, search)


@app.post("/owner/books", status_code=status.HTTP_201_CREATED)
def create_book(
    req: schemas.BookCreate,
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
):
    isbn = catalog.create_book(db, req)
    return {"status": "ok", "isbn": isbn}


@app.put("/owner/books/discontinue")
def discontinue_books(
    isbns: List[int] = Body(...),
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return {"status": "ok", "changed": catalog.discontinue_books(db, isbns)}


@app.put("/owner/books/undiscontinue")
def undiscontinue_books(
    isbns: List[int] = Body(...),
    owner: SessionIdentity = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return {"status": "ok", "changed": catalog.undiscontinue_books(db, isbns)}


@app.get("/owner/reports/sales")
def sales_report(owner: SessionIdentity = Depends(current_owner), db: Session = Depends(get_db)):
    """Units sold per day, in total and per publisher."""
    by_publisher = {
        publisher.company_name: reports.sales_by_publisher(db, publisher.publisher_id)
        for publisher in catalog.list_publishers(db)
    }
    return {"total": reports.sales_by_date(db), "publishers": by_publisher}
