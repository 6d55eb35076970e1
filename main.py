import re
import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, File, Form, Header, Path, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cart import carts, owner_key
from config import LOG_LEVEL, PORT
from database import (
    books, users, orders, engine, init_db, database_status, MAX_ID,
    create_row, create_rows, get_rows, get_row_by_id, get_row_by, update_row,
    delete_row, delete_rows, delete_all_rows,
)
from filters import parse_price, search_query, advanced_search_query, filter_query
from image_host import ImageHost, ImageUploadError, get_image_host
from checkout import place_order
from schemas import (
    BookCreate, BookUpdate, IdList, CartItemIn, CartItem, OrderCreate,
    RegisterRequest, LoginRequest, LoginResponse, UserOut,
)
from security import (
    hash_password, verify_password, role_for, create_access_token, revoke_token,
    get_token_claims, get_optional_claims,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Bookstore API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------- Error bodies -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        messages.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "Invalid request"))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages)})


@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    orig = getattr(exc, "orig", None)
    return JSONResponse(status_code=500, content={"error": str(orig or exc)})


@app.exception_handler(ImageUploadError)
async def upload_error(request: Request, exc: ImageUploadError):
    return JSONResponse(status_code=500, content={"error": str(exc)})


# ------------------------- Helpers ----------------------------
def serialize_book(row: dict) -> dict:
    doc = dict(row)
    if doc.get("price") is not None:
        doc["price"] = f"{Decimal(str(doc['price'])):.2f}"
    return doc


def serialize_order(row: dict) -> dict:
    doc = dict(row)
    doc["total"] = f"{Decimal(str(doc['total'])):.2f}"
    return doc


def serialize_user(row: dict) -> dict:
    return UserOut(**row).model_dump()


INTEGER_RE = re.compile(r"-?[0-9]+")
DIGITS_RE = re.compile(r"[0-9]+")


def _coerce_ids(values: list) -> List[int]:
    if not values:
        raise HTTPException(status_code=400, detail="ids must be a non-empty array")
    ids = []
    for v in values:
        if isinstance(v, bool):
            value = None
        elif isinstance(v, int):
            value = v
        elif isinstance(v, float) and v.is_integer():
            value = int(v)
        elif isinstance(v, str) and INTEGER_RE.fullmatch(v.strip()):
            value = int(v.strip())
        else:
            value = None
        if value is None or not -MAX_ID <= value <= MAX_ID:
            raise HTTPException(status_code=400, detail=f"Invalid id: {v!r}")
        ids.append(value)
    return ids


def _price_bounds(min_price: Optional[str], max_price: Optional[str]):
    try:
        return parse_price(min_price, "minPrice"), parse_price(max_price, "maxPrice")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def cart_owner(claims: Optional[dict] = Depends(get_optional_claims), x_session_id: Optional[str] = Header(None)) -> str:
    return owner_key(claims["id"] if claims else None, x_session_id)


# ------------------------- Startup ----------------------------
@app.on_event("startup")
async def create_tables():
    if engine is None:
        logger.warning("DATABASE_URL is not set; database routes will fail")
        return
    init_db()


# ------------------------- Basic Routes -----------------------
@app.get("/")
def root():
    return {"message": "Bookstore API"}


@app.get("/test")
def test_database():
    response = {"backend": "Running"}
    response.update(database_status())
    return response


# ------------------------- Books CRUD -------------------------
@app.get("/api/books")
def list_books():
    return [serialize_book(b) for b in get_rows(books)]


@app.get("/api/books/{book_ref}")
def get_book(book_ref: str):
    """Look a book up by numeric id, falling back to its ISBN"""
    doc = None
    if DIGITS_RE.fullmatch(book_ref) and int(book_ref) <= MAX_ID:
        doc = get_row_by_id(books, int(book_ref))
    if doc is None:
        doc = get_row_by(books, "isbn", book_ref)
    if not doc:
        raise HTTPException(status_code=404, detail="Book not found")
    return serialize_book(doc)


@app.post("/api/books", status_code=201)
def create_book(payload: BookCreate, claims: dict = Depends(get_token_claims)):
    creator = get_row_by_id(users, claims["id"])
    data = payload.model_dump()
    data["username"] = creator["username"] if creator else None
    return serialize_book(create_row(books, data))


@app.post("/api/books/bulk", status_code=201)
def create_books_bulk(payload: List[BookCreate], claims: dict = Depends(get_token_claims)):
    if not payload:
        raise HTTPException(status_code=400, detail="At least one book is required")
    creator = get_row_by_id(users, claims["id"])
    username = creator["username"] if creator else None
    rows = [{**book.model_dump(), "username": username} for book in payload]
    return [serialize_book(b) for b in create_rows(books, rows)]


@app.put("/api/books/{book_id}")
def update_book(payload: BookUpdate, book_id: int = Path(..., ge=1, le=MAX_ID)):
    doc = update_row(books, book_id, {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None})
    if not doc:
        raise HTTPException(status_code=404, detail="Book not found")
    return serialize_book(doc)


@app.delete("/api/books/{book_id}", status_code=204)
def delete_book(book_id: int = Path(..., ge=1, le=MAX_ID)):
    if not delete_row(books, book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    logger.info("Deleted book %s", book_id)
    return Response(status_code=204)


@app.post("/api/books/multiple")
def delete_books(payload: IdList):
    ids = _coerce_ids(payload.ids)
    return {"deleted": delete_rows(books, ids)}


@app.delete("/api/books")
def delete_all_books():
    return {"deleted": delete_all_rows(books)}


# ------------------------- Search -----------------------------
@app.get("/api/search")
def search_books(
    query: Optional[str] = None,
    title: Optional[str] = None,
    author: Optional[str] = None,
    genre: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
):
    low, high = _price_bounds(min_price, max_price)
    q = search_query(query=query, title=title, author=author, genre=genre, min_price=low, max_price=high)
    return [serialize_book(b) for b in get_rows(books, where=q.where())]


@app.get("/api/advanced-search")
def advanced_search(
    query: Optional[str] = None,
    title: Optional[str] = None,
    author: Optional[str] = None,
    genre: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
):
    low, high = _price_bounds(min_price, max_price)
    q = advanced_search_query(title=title or query, author=author, genre=genre, min_price=low, max_price=high)
    return [serialize_book(b) for b in get_rows(books, where=q.where())]


@app.get("/api/filter")
def filter_books(
    query: Optional[str] = None,
    title: Optional[str] = None,
    author: Optional[str] = None,
    genre: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
):
    low, high = _price_bounds(min_price, max_price)
    q = filter_query(title=title or query, author=author, genre=genre, min_price=low, max_price=high)
    return [serialize_book(b) for b in get_rows(books, where=q.where())]


# ------------------------- Cart & Orders ----------------------
@app.post("/api/cart", response_model=List[CartItem])
def add_to_cart(payload: CartItemIn, owner: str = Depends(cart_owner)):
    return carts.add(owner, payload.bookId, payload.quantity)


@app.get("/api/cart", response_model=List[CartItem])
def get_cart(owner: str = Depends(cart_owner)):
    return carts.get(owner)


@app.delete("/api/cart/{book_id}", response_model=List[CartItem])
def remove_from_cart(book_id: int = Path(..., ge=1, le=MAX_ID), owner: str = Depends(cart_owner)):
    if not carts.remove(owner, book_id):
        raise HTTPException(status_code=404, detail="Book not in cart")
    return carts.get(owner)


@app.post("/api/order", status_code=201)
def create_order(
    payload: OrderCreate,
    owner: str = Depends(cart_owner),
    claims: Optional[dict] = Depends(get_optional_claims),
):
    user_id = payload.userId if payload.userId is not None else (claims["id"] if claims else None)
    if user_id is None:
        raise HTTPException(status_code=400, detail="userId is required")
    try:
        order = place_order(user_id, carts, owner)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_order(order)


@app.get("/api/orders")
def list_orders(claims: dict = Depends(get_token_claims)):
    where = None if claims.get("role") == "admin" else orders.c.user_id == claims["id"]
    return [serialize_order(o) for o in get_rows(orders, where=where)]


# ------------------------- Auth Endpoints ---------------------
@app.post("/api/register", status_code=201, response_model=UserOut)
def register(payload: RegisterRequest):
    if get_row_by(users, "username", payload.username):
        raise HTTPException(status_code=400, detail="Username already exists")
    if get_row_by(users, "email", payload.email):
        raise HTTPException(status_code=400, detail="Email already exists")
    try:
        user = create_row(users, {
            "username": payload.username,
            "email": payload.email,
            "password": hash_password(payload.password),
            "role": role_for(payload.username),
        })
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Username or email already exists")
    return serialize_user(user)


@app.post("/api/login", response_model=LoginResponse)
def login(payload: LoginRequest):
    user = get_row_by(users, "username", payload.identifier) or get_row_by(users, "email", payload.identifier)
    if not user or not verify_password(payload.password, user["password"]):
        logger.info("Failed login for %s", payload.identifier)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token({"id": user["id"], "role": user["role"]})
    return LoginResponse(token=token, user=UserOut(**user))


@app.post("/api/logout")
def logout(claims: dict = Depends(get_token_claims)):
    revoke_token(claims)
    return {"status": "logged out"}


# ------------------------- Users ------------------------------
@app.get("/api/users", response_model=List[UserOut])
def list_users():
    return [serialize_user(u) for u in get_rows(users)]


@app.get("/api/user", response_model=UserOut)
def get_profile(claims: dict = Depends(get_token_claims)):
    user = get_row_by_id(users, claims["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_user(user)


@app.put("/api/profile/update", response_model=UserOut)
def update_profile(
    username: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    profile_pic: Optional[UploadFile] = File(None),
    claims: dict = Depends(get_token_claims),
    image_host: ImageHost = Depends(get_image_host),
):
    user = get_row_by_id(users, claims["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    changes = {}
    if username and username.strip() and username.strip() != user["username"]:
        existing = get_row_by(users, "username", username.strip())
        if existing and existing["id"] != user["id"]:
            raise HTTPException(status_code=400, detail="Username already exists")
        changes["username"] = username.strip()
    if email:
        try:
            email = TypeAdapter(EmailStr).validate_python(email.strip())
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid email address")
        if email != user["email"]:
            existing = get_row_by(users, "email", email)
            if existing and existing["id"] != user["id"]:
                raise HTTPException(status_code=400, detail="Email already exists")
            changes["email"] = email
    if password:
        changes["password"] = hash_password(password)
    if profile_pic is not None and profile_pic.filename:
        data = profile_pic.file.read()
        if data:
            changes["profile_pic_url"] = image_host.upload(
                data, profile_pic.filename, profile_pic.content_type or "application/octet-stream"
            )
            logger.info("Uploaded profile picture for user %s", user["id"])

    updated = update_row(users, user["id"], changes)
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_user(updated)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
