"""
API Schemas

Request and response bodies for the bookstore API, defined as Pydantic models.
Table layouts live in database.py; these models describe what crosses the wire.
- BookCreate / BookUpdate -> "books" table
- RegisterRequest -> "users" table
- OrderCreate -> "orders" table
"""

from decimal import Decimal
from typing import Optional, List, Literal, Union, Any

from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

from database import MAX_ID


def join_names(value: Union[str, List[str], None]) -> Optional[str]:
    """Store author/genre as one display string; lists are joined with ', '"""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value if str(v).strip()]
        return ", ".join(parts) if parts else None
    value = str(value).strip()
    return value or None


class BookCreate(BaseModel):
    isbn: str = Field(..., min_length=1, description="ISBN, unique per book")
    title: str = Field(..., min_length=1, description="Book title")
    author: Optional[Union[str, List[str]]] = Field(None, description="Author name or list of names")
    genre: Optional[Union[str, List[str]]] = Field(None, description="Genre or list of genres")
    price: Decimal = Field(..., ge=0, description="Price")
    image_url: Optional[str] = Field(None, description="Cover image URL")
    description: Optional[str] = Field(None, description="Description")

    @field_validator("isbn", "title", mode="before")
    @classmethod
    def _strip_required(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("author", "genre", mode="after")
    @classmethod
    def _join(cls, v):
        return join_names(v)


class BookUpdate(BaseModel):
    isbn: Optional[str] = Field(None, min_length=1)
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[Union[str, List[str]]] = None
    genre: Optional[Union[str, List[str]]] = None
    price: Optional[Decimal] = Field(None, ge=0)
    image_url: Optional[str] = None
    description: Optional[str] = None

    @field_validator("author", "genre", mode="after")
    @classmethod
    def _join(cls, v):
        return join_names(v)


class IdList(BaseModel):
    ids: List[Any] = Field(..., description="Book ids to delete")


# ------------------------- Cart & Orders ----------------------
class CartItemIn(BaseModel):
    bookId: int = Field(..., ge=1, le=MAX_ID, description="Referenced book id")
    quantity: int = Field(1, ge=1, description="Quantity to add")


class CartItem(BaseModel):
    bookId: int
    quantity: int


class OrderCreate(BaseModel):
    userId: Optional[int] = Field(None, ge=1, le=MAX_ID, description="Ordering user; defaults to the token's user")


# ------------------------- Users ------------------------------
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("username", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    """Either field may carry a username or an email address"""

    username: Optional[str] = None
    email: Optional[str] = None
    password: str

    @model_validator(mode="after")
    def _identifier_present(self):
        if not (self.username or self.email):
            raise ValueError("username or email is required")
        return self

    @property
    def identifier(self) -> str:
        return self.username or self.email


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    role: Literal["admin", "user"]
    profile_pic_url: Optional[str] = None


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserOut
