import copy
import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import DuplicateUsernameError, FavoriteExistsError, encode_dates
from main import create_app
from security import reset_pwd_context
from settings import reset_settings

# ---------------------------------------------------------------------------
# Fake store
# ---------------------------------------------------------------------------


class FakeMovieStore:
    """
    In-memory stand-in for MovieStore.

    Mirrors the MovieStore interface and its error contract (duplicate
    usernames, duplicate favorites) so the HTTP layer can be exercised
    without MongoDB.
    """

    def __init__(self, movies=None):
        self.movies = [dict(m, _id=m.get("_id", ObjectId())) for m in movies or []]
        self.users = []
        self.connected = False

    def connect(self):
        self.connected = True

    def close(self):
        self.connected = False

    # Movies

    def list_movies(self):
        return copy.deepcopy(self.movies)

    def find_movie_by_title(self, title):
        for m in self.movies:
            if m["Title"] == title:
                return copy.deepcopy(m)
        for m in self.movies:
            if m["Title"].lower() == title.lower():
                return copy.deepcopy(m)
        return None

    def _find_by_name(self, key, name):
        names = [(m, m.get(key, {}).get("Name", "")) for m in self.movies]
        found = [m for m, n in names if n == name]
        if not found:
            found = [m for m, n in names if n.lower() == name.lower()]
        return copy.deepcopy(found)

    def find_movies_by_genre(self, name):
        return self._find_by_name("Genre", name)

    def find_movies_by_director(self, name):
        return self._find_by_name("Director", name)

    def find_movies_by_ids(self, ids):
        by_id = {m["_id"]: m for m in self.movies}
        return [copy.deepcopy(by_id[i]) for i in ids if i in by_id]

    def seed_movies(self, movies):
        if self.movies:
            return 0
        self.movies = [dict(m, _id=ObjectId()) for m in movies]
        return len(self.movies)

    # Users

    def _user(self, username):
        return next((u for u in self.users if u["Username"] == username), None)

    def list_users(self):
        return copy.deepcopy(self.users)

    def find_user(self, username):
        return copy.deepcopy(self._user(username))

    def create_user(self, doc):
        if self._user(doc["Username"]):
            raise DuplicateUsernameError(doc["Username"])
        data = encode_dates(copy.deepcopy(doc))
        data.setdefault("FavoriteMovies", [])
        data["_id"] = ObjectId()
        self.users.append(data)
        return copy.deepcopy(data)

    def update_user(self, username, fields):
        user = self._user(username)
        if user is None:
            return None
        new_name = fields.get("Username", username)
        if new_name != username and self._user(new_name):
            raise DuplicateUsernameError(new_name)
        user.update(encode_dates(copy.deepcopy(fields)))
        return copy.deepcopy(user)

    def delete_user(self, username):
        user = self._user(username)
        if user is None:
            return None
        self.users.remove(user)
        return user

    def add_favorite(self, username, movie_id):
        user = self._user(username)
        if user is None:
            return None
        if movie_id in user["FavoriteMovies"]:
            raise FavoriteExistsError(username, movie_id)
        user["FavoriteMovies"].append(movie_id)
        return copy.deepcopy(user)

    def remove_favorite(self, username, movie_id):
        user = self._user(username)
        if user is None:
            return None
        user["FavoriteMovies"] = [m for m in user["FavoriteMovies"] if m != movie_id]
        return copy.deepcopy(user)


CATALOG = [
    {
        "Title": "The Matrix",
        "Description": "Welcome to the real world.",
        "Genre": {"Name": "Science Fiction", "Description": "Speculative fiction."},
        "Director": {"Name": "Lana Wachowski", "Bio": "Director."},
        "ImagePath": "matrix.png",
        "Featured": True,
    },
    {
        "Title": "Inception",
        "Description": "Dreams within dreams.",
        "Genre": {"Name": "Science Fiction", "Description": "Speculative fiction."},
        "Director": {"Name": "Christopher Nolan", "Bio": "Director."},
        "ImagePath": "inception.png",
        "Featured": True,
    },
    {
        "Title": "The Dark Knight",
        "Description": "Why so serious?",
        "Genre": {"Name": "Action", "Description": "Explosions."},
        "Director": {"Name": "Christopher Nolan", "Bio": "Director."},
        "ImagePath": "darkknight.png",
        "Featured": False,
    },
]

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    reset_pwd_context()
    yield
    reset_settings()
    reset_pwd_context()


@pytest.fixture
def store():
    return FakeMovieStore(CATALOG)


@pytest.fixture
def client(store):
    with TestClient(create_app(store=store)) as c:
        yield c


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def register(client, username="alice01", password="secret123", email=None, birthday="1990-05-17"):
    body = {
        "Username": username,
        "Password": password,
        "Email": email or f"{username}@example.com",
    }
    if birthday:
        body["Birthday"] = birthday
    return client.post("/users", json=body)


def login(client, username="alice01", password="secret123"):
    return client.post("/login", json={"Username": username, "Password": password})


def auth_headers(client, username="alice01", password="secret123"):
    resp = login(client, username, password)
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def alice(client):
    resp = register(client)
    assert resp.status_code == 201, resp.text
    return auth_headers(client)
