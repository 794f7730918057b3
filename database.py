"""
Database access

All MongoDB reads and writes go through a single MovieStore, built once at
startup and handed to request handlers through `get_store`.

Collections:
- "movies": read-only catalog, seeded out of band (see seed.py)
- "users": accounts and their FavoriteMovies references

Name lookups (Title, Genre.Name, Director.Name) try an exact match on the
title-cased value first, then fall back to a case-insensitive match on the
same value, so entries not stored in title case stay reachable.
"""

import logging
import re
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import Request
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for store-level failures the handlers know how to map."""


class DuplicateUsernameError(StoreError):
    def __init__(self, username: str):
        super().__init__(f"{username} already exists")
        self.username = username


class FavoriteExistsError(StoreError):
    def __init__(self, username: str, movie_id: ObjectId):
        super().__init__(f"{movie_id} is already in {username}'s favorites")
        self.username = username
        self.movie_id = movie_id


# Utilities

def to_str_id(doc):
    """Make a stored document JSON-safe for responses.

    `_id` becomes a string `id`, favorite references become strings, a stored
    Birthday goes back to a plain date and the password hash is dropped.
    """
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    if "FavoriteMovies" in d:
        d["FavoriteMovies"] = [str(m) for m in d["FavoriteMovies"]]
    if isinstance(d.get("Birthday"), datetime):
        d["Birthday"] = d["Birthday"].date()
    d.pop("Password", None)
    return d


def encode_dates(fields: Dict[str, Any]) -> Dict[str, Any]:
    # BSON stores datetimes only
    out = {}
    for key, value in fields.items():
        if isinstance(value, date) and not isinstance(value, datetime):
            value = datetime.combine(value, time.min, tzinfo=timezone.utc)
        out[key] = value
    return out


def _case_insensitive(value: str) -> dict:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


class MovieStore:
    def __init__(self, url: str, database_name: str, client: Optional[MongoClient] = None):
        self._url = url
        self._database_name = database_name
        self._client = client

    # Lifecycle

    def connect(self) -> None:
        """Open the client, check the server answers and ensure indexes."""
        if self._client is None:
            self._client = MongoClient(self._url, serverSelectionTimeoutMS=5000)
        self._client.admin.command("ping")
        self.users.create_index([("Username", ASCENDING)], unique=True)
        logger.info("Connected to MongoDB database %s", self._database_name)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")

    @property
    def db(self) -> Database:
        if self._client is None:
            raise StoreError("MovieStore is not connected")
        return self._client[self._database_name]

    @property
    def movies(self) -> Collection:
        return self.db["movies"]

    @property
    def users(self) -> Collection:
        return self.db["users"]

    # Movies

    def list_movies(self) -> List[dict]:
        return list(self.movies.find())

    def find_movie_by_title(self, title: str) -> Optional[dict]:
        movie = self.movies.find_one({"Title": title})
        if movie is None:
            movie = self.movies.find_one({"Title": _case_insensitive(title)})
        return movie

    def find_movies_by_genre(self, name: str) -> List[dict]:
        return self._find_by_name("Genre.Name", name)

    def find_movies_by_director(self, name: str) -> List[dict]:
        return self._find_by_name("Director.Name", name)

    def _find_by_name(self, field: str, name: str) -> List[dict]:
        movies = list(self.movies.find({field: name}))
        if not movies:
            movies = list(self.movies.find({field: _case_insensitive(name)}))
        return movies

    def find_movies_by_ids(self, ids: Iterable[ObjectId]) -> List[dict]:
        """Return the movies for `ids` in the same order, skipping unknown ids."""
        ids = list(ids)
        if not ids:
            return []
        by_id = {m["_id"]: m for m in self.movies.find({"_id": {"$in": ids}})}
        return [by_id[i] for i in ids if i in by_id]

    def seed_movies(self, movies: List[dict]) -> int:
        if self.movies.count_documents({}) > 0:
            return 0
        result = self.movies.insert_many(movies)
        return len(result.inserted_ids)

    # Users

    def list_users(self) -> List[dict]:
        return list(self.users.find())

    def find_user(self, username: str) -> Optional[dict]:
        return self.users.find_one({"Username": username})

    def create_user(self, doc: Dict[str, Any]) -> dict:
        data = encode_dates(doc)
        data.setdefault("FavoriteMovies", [])
        try:
            result = self.users.insert_one(data)
        except DuplicateKeyError:
            raise DuplicateUsernameError(doc["Username"])
        data["_id"] = result.inserted_id
        return data

    def update_user(self, username: str, fields: Dict[str, Any]) -> Optional[dict]:
        if not fields:
            return self.find_user(username)
        try:
            return self.users.find_one_and_update(
                {"Username": username},
                {"$set": encode_dates(fields)},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise DuplicateUsernameError(fields.get("Username", username))

    def delete_user(self, username: str) -> Optional[dict]:
        return self.users.find_one_and_delete({"Username": username})

    def add_favorite(self, username: str, movie_id: ObjectId) -> Optional[dict]:
        """Append `movie_id` to the user's favorites unless already present.

        The membership check and the push are one conditional update, so two
        concurrent adds of the same movie cannot both succeed.
        """
        updated = self.users.find_one_and_update(
            {"Username": username, "FavoriteMovies": {"$ne": movie_id}},
            {"$push": {"FavoriteMovies": movie_id}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None and self.users.find_one({"Username": username}, {"_id": 1}):
            raise FavoriteExistsError(username, movie_id)
        return updated

    def remove_favorite(self, username: str, movie_id: ObjectId) -> Optional[dict]:
        return self.users.find_one_and_update(
            {"Username": username},
            {"$pull": {"FavoriteMovies": movie_id}},
            return_document=ReturnDocument.AFTER,
        )


def get_store(request: Request) -> MovieStore:
    return request.app.state.store
