"""
Database Schemas

MongoDB collection schemas and the request payloads validated against them.

Each collection model mirrors the stored document shape, field names included:
- Movie -> "movies" collection (Genre and Director are embedded)
- User -> "users" collection

UserCreate and UserUpdate carry the field rules for registration and profile
updates. A failing rule surfaces as a 422 listing every failing field.
"""

import re
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_MIN_LENGTH = 5
_ALPHANUMERIC = re.compile(r"^[A-Za-z0-9]+$")


class MovieGenre(BaseModel):
    Name: str
    Description: Optional[str] = None


class MovieDirector(BaseModel):
    Name: str
    Bio: Optional[str] = None
    Birth: Optional[str] = None
    Death: Optional[str] = None


class Movie(BaseModel):
    """
    Movies collection schema
    Collection name: "movies"
    """
    Title: str = Field(..., description="Lookup key, stored in title case")
    Description: Optional[str] = None
    Genre: Optional[MovieGenre] = None
    Director: Optional[MovieDirector] = None
    ImagePath: Optional[str] = None
    Featured: bool = False


class User(BaseModel):
    """
    Users collection schema
    Collection name: "users"
    """
    Username: str = Field(..., description="Unique account name")
    Password: str = Field(..., description="bcrypt hash, never plaintext")
    Email: EmailStr
    Birthday: Optional[date] = None
    FavoriteMovies: List[str] = Field(default_factory=list, description="Movie _id references")


class _UserRules(BaseModel):
    @field_validator("Username", check_fields=False)
    @classmethod
    def check_username(cls, v):
        if v is None:
            return v
        if len(v) < USERNAME_MIN_LENGTH:
            raise ValueError(f"Username must be at least {USERNAME_MIN_LENGTH} characters long")
        if not _ALPHANUMERIC.match(v):
            raise ValueError("Username contains non alphanumeric characters - not allowed.")
        return v

    @field_validator("Password", check_fields=False)
    @classmethod
    def check_password(cls, v):
        if v is not None and not v:
            raise ValueError("Password is required")
        return v


class UserCreate(_UserRules):
    Username: str
    Password: str
    Email: EmailStr
    Birthday: Optional[date] = None


class UserUpdate(_UserRules):
    Username: Optional[str] = None
    Password: Optional[str] = None
    Email: Optional[EmailStr] = None
    Birthday: Optional[date] = None
