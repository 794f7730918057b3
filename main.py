import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel

from database import (
    DuplicateUsernameError,
    FavoriteExistsError,
    MovieStore,
    get_store,
    to_str_id,
)
from schemas import User, UserCreate, UserUpdate
from security import (
    AuthenticatedUser,
    authenticate,
    create_access_token,
    hash_password,
    require_user,
)
from settings import get_settings

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("movie_api.access")

BASE_DIR = Path(__file__).resolve().parent

router = APIRouter()


# Utilities

def title_case(value: str) -> str:
    """Capitalize the first letter of every space-separated word, lowercase the rest."""
    if not value:
        return value
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split(" "))


def parse_movie_id(movie_id: str) -> ObjectId:
    try:
        return ObjectId(movie_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid MovieID format")


def ensure_same_user(current_user: AuthenticatedUser, username: str) -> None:
    if current_user.Username != username:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")


def static_file(name: str) -> Path:
    static_dir = Path(get_settings().static_dir)
    if not static_dir.is_absolute():
        static_dir = BASE_DIR / static_dir
    return static_dir / name


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Auth models

class LoginRequest(BaseModel):
    Username: str
    Password: str


class AuthResponse(BaseModel):
    user: dict
    token: str


# Static pages

@router.get("/")
def read_root():
    path = static_file("index.html")
    if not path.is_file():
        logger.error("Landing page not found at %s", path)
        return PlainTextResponse("An error has occurred", status_code=500)
    return FileResponse(path)


@router.get("/documentation")
def read_documentation():
    return FileResponse(static_file("documentation.html"))


# Auth

@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, store: MovieStore = Depends(get_store)):
    user = authenticate(store, payload.Username, payload.Password)
    if not user:
        raise HTTPException(status_code=401, detail="Incorrect username or password.")
    token = create_access_token(user["Username"])
    logger.info("Issued token for %s", user["Username"])
    return AuthResponse(user=to_str_id(user), token=token)


# Movies

@router.get("/movies")
def list_movies(store: MovieStore = Depends(get_store)):
    return [to_str_id(m) for m in store.list_movies()]


@router.get("/movies/{title}")
def get_movie(
    title: str,
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    movie = store.find_movie_by_title(title_case(title))
    if not movie:
        raise HTTPException(status_code=404, detail="Movie title not found")
    return to_str_id(movie)


@router.get("/movies/genre/{genre_name}")
def get_movies_by_genre(
    genre_name: str,
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    movies = store.find_movies_by_genre(title_case(genre_name))
    if not movies:
        raise HTTPException(status_code=404, detail="Genre Name not found")
    return [to_str_id(m) for m in movies]


@router.get("/movies/director/{director_name}")
def get_movies_by_director(
    director_name: str,
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    movies = store.find_movies_by_director(title_case(director_name))
    if not movies:
        raise HTTPException(status_code=404, detail="Director Name not found")
    return [to_str_id(m) for m in movies]


# Users

@router.get("/users")
def list_users(
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    return [to_str_id(u) for u in store.list_users()]


@router.get("/users/{username}")
def get_user(
    username: str,
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    user = store.find_user(username)
    if not user:
        raise HTTPException(status_code=404, detail="Username not found")
    return [to_str_id(user)]


@router.get("/users/{username}/FavoriteMovies")
def get_favorite_movies(username: str, store: MovieStore = Depends(get_store)):
    user = store.find_user(username)
    if not user:
        raise HTTPException(status_code=404, detail=f"{username} was not found")
    movies = store.find_movies_by_ids(user.get("FavoriteMovies", []))
    return [to_str_id(m) for m in movies]


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, store: MovieStore = Depends(get_store)):
    if store.find_user(payload.Username):
        raise HTTPException(status_code=400, detail=f"{payload.Username} already exists")
    user = User(
        Username=payload.Username,
        Password=hash_password(payload.Password),
        Email=payload.Email,
        Birthday=payload.Birthday,
    )
    try:
        created = store.create_user(user.model_dump())
    except DuplicateUsernameError as e:
        # lost the race against a concurrent registration
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Registered user %s", payload.Username)
    return to_str_id(created)


@router.put("/users/{username}")
def update_user(
    username: str,
    payload: UserUpdate,
    current_user: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    ensure_same_user(current_user, username)
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "Password" in fields:
        fields["Password"] = hash_password(fields["Password"])
    try:
        updated = store.update_user(username, fields)
    except DuplicateUsernameError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail=f"{username} was not found")
    return to_str_id(updated)


@router.delete("/users/{username}", response_class=PlainTextResponse)
def delete_user(
    username: str,
    current_user: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    ensure_same_user(current_user, username)
    if not store.delete_user(username):
        raise HTTPException(status_code=404, detail=f"{username} was not found")
    logger.info("Deleted user %s", username)
    return f"{username} was deleted."


# Favorites

@router.post("/users/{username}/movies/{movie_id}")
def add_favorite(
    username: str,
    movie_id: str,
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    oid = parse_movie_id(movie_id)
    try:
        updated = store.add_favorite(username, oid)
    except FavoriteExistsError:
        raise HTTPException(status_code=400, detail="Movie is already in favorites")
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return to_str_id(updated)


@router.delete("/users/{username}/movies/{movie_id}")
def remove_favorite(
    username: str,
    movie_id: str,
    _: AuthenticatedUser = Depends(require_user),
    store: MovieStore = Depends(get_store),
):
    oid = parse_movie_id(movie_id)
    updated = store.remove_favorite(username, oid)
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return to_str_id(updated)


# Middleware and error handlers

async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    # unhandled errors surface here and end up as a 500
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        client = request.client.host if request.client else "-"
        access_logger.info(
            '%s "%s %s" %s %.1fms',
            client,
            request.method,
            request.url.path,
            status_code,
            elapsed_ms,
        )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "path", "query")]
        msg = err.get("msg", "Invalid value").removeprefix("Value error, ")
        errors.append({"field": ".".join(loc) or "body", "msg": msg})
    return JSONResponse(status_code=422, content={"errors": errors})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return PlainTextResponse("Something broke!", status_code=500)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = app.state.store
    try:
        store.connect()
    except Exception:
        logger.exception("Could not connect to the database, shutting down")
        raise
    yield
    store.close()


def create_app(store: Optional[MovieStore] = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    if store is None:
        store = MovieStore(settings.database_url, settings.database_name)

    app = FastAPI(title="myFlix Movie API", lifespan=lifespan)
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
