import copy

import pytest
from fastapi.testclient import TestClient

from lending_library.api import create_app
from lending_library.database import LibraryDao
from lending_library.library import LendingLibrary

BASE = "/api"

BOOKS = [
    {"isbn": "059-651-774-8", "title": "JavaScript: The Definitive Guide",
     "authors": ["David Flanagan"], "pages": 1096, "year": 2011,
     "publisher": "O'Reilly Media", "nCopies": 2},
    {"isbn": "059-680-552-5", "title": "JavaScript: The Good Parts",
     "authors": ["Douglas Crockford"], "pages": 176, "year": 2008,
     "publisher": "O'Reilly Media", "nCopies": 3},
    {"isbn": "159-327-950-6", "title": "Eloquent JavaScript",
     "authors": ["Marijn Haverbeke"], "pages": 472, "year": 2018,
     "publisher": "No Starch Press", "nCopies": 1},
    {"isbn": "144-931-979-3", "title": "Programming Ruby",
     "authors": ["Dave Thomas", "Chad Fowler", "Andy Hunt"], "pages": 888, "year": 2013,
     "publisher": "Pragmatic Bookshelf", "nCopies": 1},
    {"isbn": "059-651-617-2", "title": "The Ruby Programming Language",
     "authors": ["David Flanagan", "Yukihiro Matsumoto"], "pages": 446, "year": 2008,
     "publisher": "O'Reilly Media", "nCopies": 2},
    {"isbn": "098-153-161-4", "title": "Programming in Scala",
     "authors": ["Martin Odersky", "Lex Spoon", "Bill Venners"], "pages": 852, "year": 2010,
     "publisher": "Artima", "nCopies": 1},
    {"isbn": "059-615-595-1", "title": "Programming Scala",
     "authors": ["Dean Wampler", "Alex Payne"], "pages": 448, "year": 2009,
     "publisher": "O'Reilly Media", "nCopies": 1},
    {"isbn": "020-161-622-X", "title": "The Pragmatic Programmer",
     "authors": ["Andrew Hunt", "David Thomas"], "pages": 352, "year": 1999,
     "publisher": "Addison-Wesley", "nCopies": 2},
]

PATRONS = ["joe", "sue", "ann"]


@pytest.fixture
def books():
    # Each test gets its own copy so mutations do not leak
    return copy.deepcopy(BOOKS)


@pytest.fixture
def dao():
    dao = LibraryDao()
    yield dao
    dao.close()


@pytest.fixture
def lib(dao):
    return LendingLibrary(dao, default_index=0, default_count=5)


@pytest.fixture
def loaded_lib(lib, books):
    for book in books:
        assert lib.add_book(book).is_ok
    return lib


@pytest.fixture
def client(lib):
    with TestClient(create_app(lib, base=BASE, trace=False)) as test_client:
        yield test_client


@pytest.fixture
def loaded_client(client, books):
    for book in books:
        response = client.put(f"{BASE}/books", json=book)
        assert response.status_code == 201
    return client
