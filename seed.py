"""Load the demo catalog into an empty movies collection.

Usage: python -m seed
"""

import logging
import sys

from pymongo.errors import PyMongoError

from database import MovieStore
from schemas import Movie
from settings import get_settings

logger = logging.getLogger(__name__)

DEMO_MOVIES = [
    {
        "Title": "The Matrix",
        "Description": "A hacker learns the world he knows is a simulation and joins the rebellion against its machine keepers.",
        "Genre": {"Name": "Science Fiction", "Description": "Speculative stories built on science and technology."},
        "Director": {"Name": "Lana Wachowski", "Bio": "American film director and screenwriter.", "Birth": "1965"},
        "ImagePath": "matrix.png",
        "Featured": True,
    },
    {
        "Title": "Inception",
        "Description": "A thief who steals secrets through dream-sharing is asked to plant an idea instead.",
        "Genre": {"Name": "Science Fiction", "Description": "Speculative stories built on science and technology."},
        "Director": {"Name": "Christopher Nolan", "Bio": "British-American filmmaker.", "Birth": "1970"},
        "ImagePath": "inception.png",
        "Featured": True,
    },
    {
        "Title": "The Dark Knight",
        "Description": "Batman faces the Joker, a criminal mastermind bent on plunging Gotham into anarchy.",
        "Genre": {"Name": "Action", "Description": "Fast-paced stories driven by physical conflict."},
        "Director": {"Name": "Christopher Nolan", "Bio": "British-American filmmaker.", "Birth": "1970"},
        "ImagePath": "darkknight.png",
        "Featured": False,
    },
    {
        "Title": "Pulp Fiction",
        "Description": "Interlocking stories of Los Angeles criminals told out of order.",
        "Genre": {"Name": "Crime", "Description": "Stories centred on criminals and the law."},
        "Director": {"Name": "Quentin Tarantino", "Bio": "American filmmaker and actor.", "Birth": "1963"},
        "ImagePath": "pulpfiction.png",
        "Featured": False,
    },
    {
        "Title": "Spirited Away",
        "Description": "A girl trapped in a world of spirits works in a bathhouse to free her parents.",
        "Genre": {"Name": "Animation", "Description": "Films made from drawn or modelled frames."},
        "Director": {"Name": "Hayao Miyazaki", "Bio": "Japanese animator and co-founder of Studio Ghibli.", "Birth": "1941"},
        "ImagePath": "spiritedaway.png",
        "Featured": True,
    },
]


def seed_demo_movies(store: MovieStore) -> int:
    movies = [Movie(**d).model_dump(exclude_none=True) for d in DEMO_MOVIES]
    inserted = store.seed_movies(movies)
    if inserted:
        logger.info("Seeded %d movies", inserted)
    else:
        logger.info("Catalog already seeded, nothing inserted")
    return inserted


def main() -> int:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    store = MovieStore(settings.database_url, settings.database_name)
    try:
        store.connect()
        seed_demo_movies(store)
    except PyMongoError:
        logger.exception("Seeding failed")
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
