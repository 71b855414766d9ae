import asyncio

import pytest
from fastapi.testclient import TestClient

import lending_library.api as api_module
from lending_library.api import create_app
from lending_library.library import LendingLibrary
from lending_library.result import DB, INTERNAL, err
from conftest import BASE, PATRONS

BOOKS_URL = f"{BASE}/books"
LENDINGS_URL = f"{BASE}/lendings"
HOST = "http://testserver"


def _is_error(response, status):
    body = response.json()
    return (response.status_code == status and body["isOk"] is False
            and body["status"] == status and len(body["errors"]) > 0)


# --- Add book ---
def test_add_valid_books(client, books):
    for book in books:
        response = client.put(BOOKS_URL, json=book)
        assert response.status_code == 201
        body = response.json()
        assert body["isOk"] is True
        assert body["status"] == 201
        assert body["result"] == book
        assert body["links"]["self"] == {"rel": "self", "href": f"{HOST}{BOOKS_URL}", "method": "PUT"}
        assert response.headers["location"] == f"{HOST}{BOOKS_URL}/{book['isbn']}"


def test_add_book_defaults_copies(client, books):
    book = books[0]
    del book["nCopies"]
    response = client.put(BOOKS_URL, json=book)
    assert response.status_code == 201
    assert response.json()["result"]["nCopies"] == 1


def test_add_book_missing_required_fields(client, books):
    for key in books[0]:
        if key == "nCopies":
            continue
        book = dict(books[0])
        del book[key]
        response = client.put(BOOKS_URL, json=book)
        assert _is_error(response, 400), key


@pytest.mark.parametrize("key", ["pages", "year", "nCopies"])
def test_add_book_badly_typed_numeric_field(client, books, key):
    book = {**books[0], key: "hello"}
    assert _is_error(client.put(BOOKS_URL, json=book), 400)


@pytest.mark.parametrize("key", ["isbn", "title", "publisher"])
def test_add_book_badly_typed_string_field(client, books, key):
    book = {**books[0], key: 11}
    assert _is_error(client.put(BOOKS_URL, json=book), 400)


@pytest.mark.parametrize("n_copies", [0, -1, 2.001])
def test_add_book_bad_copies(client, books, n_copies):
    book = {**books[0], "nCopies": n_copies}
    assert _is_error(client.put(BOOKS_URL, json=book), 400)


@pytest.mark.parametrize("authors", ["hello", ["hello", 22], []])
def test_add_book_bad_authors(client, books, authors):
    book = {**books[0], "authors": authors}
    assert _is_error(client.put(BOOKS_URL, json=book), 400)


def test_add_book_inconsistent_duplicate_conflicts(client, books):
    assert client.put(BOOKS_URL, json=books[0]).status_code == 201
    response = client.put(BOOKS_URL, json={**books[0], "title": "Another Title"})
    assert _is_error(response, 409)
    assert response.json()["errors"][0]["code"] == "EXISTS"


def test_add_book_malformed_json(client):
    response = client.put(BOOKS_URL, content=b'{"isbn": ', headers={"Content-Type": "application/json"})
    assert _is_error(response, 400)
    assert response.json()["errors"][0]["code"] == "SYNTAX"


def test_add_book_body_not_utf8(client):
    response = client.put(BOOKS_URL, content=b'{"isbn": "\xff\xfe"}',
                          headers={"Content-Type": "application/json"})
    assert _is_error(response, 400)
    assert response.json()["errors"][0]["code"] == "SYNTAX"


def test_add_book_returns_text_as_given(client, books):
    book = {**books[0], "title": "  Spaced Title  ", "publisher": " Pub ", "authors": [" Ann "]}
    response = client.put(BOOKS_URL, json=book)
    assert response.status_code == 201
    assert response.json()["result"] == book


# --- Get book ---
def test_get_books(loaded_client, books):
    for book in books:
        url = f"{BOOKS_URL}/{book['isbn']}"
        response = loaded_client.get(url)
        assert response.status_code == 200
        body = response.json()
        assert body["isOk"] is True
        assert body["result"] == book
        assert body["links"]["self"] == {"rel": "self", "href": f"{HOST}{url}", "method": "GET"}


def test_get_unknown_book_is_not_found(loaded_client, books):
    response = loaded_client.get(f"{BOOKS_URL}/{books[0]['isbn']}x")
    assert _is_error(response, 404)
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


def test_get_added_book_from_location(client, books):
    book = {**books[0], "isbn": "012-345-678-9"}
    response = client.put(BOOKS_URL, json=book)
    assert response.status_code == 201
    response2 = client.get(response.headers["location"])
    assert response2.status_code == 200
    assert response2.json()["result"] == book


# --- Clear ---
def test_clear(loaded_client, books):
    url = f"{BOOKS_URL}/{books[0]['isbn']}"
    assert loaded_client.get(url).status_code == 200
    response = loaded_client.delete(BASE)
    assert response.status_code == 200
    body = response.json()
    assert body["isOk"] is True
    assert "result" not in body
    assert body["links"]["self"]["method"] == "DELETE"
    assert _is_error(loaded_client.get(url), 404)


# --- Find books ---
def test_find_books_missing_search(loaded_client):
    assert _is_error(loaded_client.get(BOOKS_URL), 400)


@pytest.mark.parametrize("search", ["     ", "a #b  "])
def test_find_books_search_without_words(loaded_client, search):
    assert _is_error(loaded_client.get(BOOKS_URL, params={"search": search}), 400)


@pytest.mark.parametrize("key", ["index", "count"])
@pytest.mark.parametrize("value", ["xx", -1])
def test_find_books_bad_paging(loaded_client, key, value):
    response = loaded_client.get(BOOKS_URL, params={"search": "hello", key: value})
    assert _is_error(response, 400)


def test_find_books_all_results(loaded_client, books):
    for lang in ("javascript", "ruby", "scala"):
        response = loaded_client.get(BOOKS_URL, params={"search": lang, "count": 9999})
        assert response.status_code == 200
        expected = sorted((b for b in books if lang in b["title"].lower()),
                          key=lambda b: b["title"].lower())
        assert [r["result"] for r in response.json()["result"]] == expected


def test_find_books_multi_word_search(loaded_client, books):
    response = loaded_client.get(BOOKS_URL, params={"search": "a #definitive @JAVASCRIPT"})
    assert response.status_code == 200
    assert [r["result"] for r in response.json()["result"]] == [books[0]]


def test_find_books_matches_authors(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "david"})
    titles = [r["result"]["title"] for r in response.json()["result"]]
    assert titles == [
        "JavaScript: The Definitive Guide",
        "The Pragmatic Programmer",
        "The Ruby Programming Language",
    ]


def test_find_books_no_results(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "a #definitive1 "})
    assert response.status_code == 200
    body = response.json()
    assert body["result"] == []
    assert "next" not in body["links"]
    assert "prev" not in body["links"]


def test_find_books_item_links(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "scala"})
    for item in response.json()["result"]:
        assert item["links"]["self"] == {
            "rel": "self",
            "href": f"{HOST}{BOOKS_URL}/{item['result']['isbn']}",
            "method": "GET",
        }


def test_find_books_first_page_has_next_only(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "programming", "count": 2})
    body = response.json()
    assert [r["result"]["title"] for r in body["result"]] == [
        "Programming in Scala", "Programming Ruby",
    ]
    links = body["links"]
    assert links["self"]["href"] == f"{HOST}{BOOKS_URL}?search=programming&count=2"
    assert "prev" not in links
    assert links["next"]["method"] == "GET"
    next_page = loaded_client.get(links["next"]["href"]).json()
    assert [r["result"]["title"] for r in next_page["result"]] == [
        "Programming Scala", "The Ruby Programming Language",
    ]


def test_find_books_last_page_has_prev_only(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "programming", "index": 2, "count": 2})
    body = response.json()
    assert len(body["result"]) == 2
    assert "next" not in body["links"]
    prev_href = body["links"]["prev"]["href"]
    assert "index=0" in prev_href and "count=2" in prev_href and "search=programming" in prev_href
    prev_page = loaded_client.get(prev_href).json()
    assert [r["result"]["title"] for r in prev_page["result"]] == [
        "Programming in Scala", "Programming Ruby",
    ]


def test_find_books_prev_index_floored_at_zero(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "programming", "index": 1, "count": 3})
    links = response.json()["links"]
    assert "index=0" in links["prev"]["href"]
    assert "next" not in links


def test_find_books_uses_default_count(loaded_client):
    response = loaded_client.get(BOOKS_URL, params={"search": "the"})
    body = response.json()
    # 4 titles contain "the"; default page size is 5
    assert len(body["result"]) == 4
    assert "next" not in body["links"]


def test_find_books_uses_default_index(dao, books):
    lib = LendingLibrary(dao, default_index=2, default_count=2)
    for book in books:
        lib.add_book(book)
    with TestClient(create_app(lib, base=BASE)) as test_client:
        body = test_client.get(BOOKS_URL, params={"search": "programming"}).json()
    assert [item["result"]["title"] for item in body["result"]] == [
        "Programming Scala", "The Ruby Programming Language",
    ]
    assert "next" not in body["links"]
    assert body["links"]["prev"]["href"] == f"{HOST}{BOOKS_URL}?search=programming&index=0&count=2"


# --- Lendings ---
def test_checkout_missing_field(client, books):
    for req in ({"isbn": books[0]["isbn"]}, {"patronId": PATRONS[0]}):
        assert _is_error(client.put(LENDINGS_URL, json=req), 400)


def test_checkout_unknown_book(client, books):
    req = {"isbn": books[0]["isbn"], "patronId": PATRONS[0]}
    assert _is_error(client.put(LENDINGS_URL, json=req), 400)


def test_checkout_many_books_by_same_patron(loaded_client, books):
    for book in books:
        req = {"isbn": book["isbn"], "patronId": PATRONS[0]}
        response = loaded_client.put(LENDINGS_URL, json=req)
        assert response.status_code == 200
        assert response.json()["result"] == req


def test_repeated_checkout_by_same_patron(loaded_client, books):
    req = {"isbn": books[0]["isbn"], "patronId": PATRONS[0]}
    assert loaded_client.put(LENDINGS_URL, json=req).status_code == 200
    assert _is_error(loaded_client.put(LENDINGS_URL, json=req), 400)


def test_checkout_exhausts_copies(loaded_client, books):
    book = books[0]
    assert book["nCopies"] == 2
    results = [
        loaded_client.put(LENDINGS_URL, json={"isbn": book["isbn"], "patronId": p}).json()["isOk"]
        for p in PATRONS
    ]
    assert results == [True, True, False]


def test_checkout_and_return(loaded_client, books):
    for book in books:
        req = {"isbn": book["isbn"], "patronId": PATRONS[0]}
        assert loaded_client.put(LENDINGS_URL, json=req).status_code == 200
    for book in reversed(books):
        req = {"isbn": book["isbn"], "patronId": PATRONS[0]}
        response = loaded_client.request("DELETE", LENDINGS_URL, json=req)
        assert response.status_code == 200
        assert response.json()["result"] is True


def test_return_by_different_patron(loaded_client, books):
    for i, book in enumerate(books):
        req = {"isbn": book["isbn"], "patronId": PATRONS[i % len(PATRONS)]}
        assert loaded_client.put(LENDINGS_URL, json=req).status_code == 200
    for i, book in enumerate(books):
        req = {"isbn": book["isbn"], "patronId": PATRONS[(i + 1) % len(PATRONS)]}
        assert _is_error(loaded_client.request("DELETE", LENDINGS_URL, json=req), 400)


def test_repeated_return(loaded_client, books):
    req = {"isbn": books[0]["isbn"], "patronId": PATRONS[0]}
    assert loaded_client.put(LENDINGS_URL, json=req).status_code == 200
    assert loaded_client.request("DELETE", LENDINGS_URL, json=req).status_code == 200
    assert _is_error(loaded_client.request("DELETE", LENDINGS_URL, json=req), 400)


def test_get_lendings(loaded_client, books):
    for patron in PATRONS[:2]:
        loaded_client.put(LENDINGS_URL, json={"isbn": books[0]["isbn"], "patronId": patron})
    loaded_client.put(LENDINGS_URL, json={"isbn": books[1]["isbn"], "patronId": PATRONS[0]})

    response = loaded_client.get(LENDINGS_URL, params={"isbn": books[0]["isbn"]})
    assert response.status_code == 200
    body = response.json()
    assert body["result"] == [
        {"isbn": books[0]["isbn"], "patronId": "joe"},
        {"isbn": books[0]["isbn"], "patronId": "sue"},
    ]
    assert body["links"]["self"]["href"].startswith(f"{HOST}{LENDINGS_URL}?isbn=")

    response = loaded_client.get(LENDINGS_URL, params={"patronId": "joe"})
    assert len(response.json()["result"]) == 2


# --- Unmatched routes and framework errors ---
def test_unknown_path_is_not_found(client):
    response = client.get(f"{BASE}/unknown")
    assert _is_error(response, 404)
    error = response.json()["errors"][0]
    assert error["code"] == "NOT_FOUND"
    assert error["message"] == f"GET not supported for {HOST}{BASE}/unknown"


def test_unsupported_method_is_not_found(client):
    response = client.post(BOOKS_URL, json={})
    assert _is_error(response, 404)
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


def test_database_error_is_server_error(client, lib, books, monkeypatch):
    monkeypatch.setattr(lib.dao, "get_book", lambda isbn: err("disk on fire", DB))
    response = client.get(f"{BOOKS_URL}/{books[0]['isbn']}")
    assert _is_error(response, 500)
    assert response.json()["errors"][0]["code"] == "DB"


def test_domain_exception_is_unknown_error(client, lib, monkeypatch):
    def boom(isbn):
        raise RuntimeError("unexpected")
    monkeypatch.setattr(lib, "get_book", boom)
    response = client.get(f"{BOOKS_URL}/123")
    assert _is_error(response, 400)
    assert response.json()["errors"][0] == {"message": "unexpected", "code": "UNKNOWN"}


def test_domain_calls_run_off_the_event_loop(loaded_client, lib, books, monkeypatch):
    seen = {}
    get_book = lib.get_book

    def tracking_get_book(isbn):
        try:
            asyncio.get_running_loop()
            seen["on_loop"] = True
        except RuntimeError:
            seen["on_loop"] = False
        return get_book(isbn)

    monkeypatch.setattr(lib, "get_book", tracking_get_book)
    assert loaded_client.get(f"{BOOKS_URL}/{books[0]['isbn']}").status_code == 200
    assert seen == {"on_loop": False}


def test_unexpected_exception_is_internal_error(lib, books, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("secret detail")
    monkeypatch.setattr(api_module, "self_result", broken)
    lib.add_book(books[0])
    with TestClient(create_app(lib, base=BASE), raise_server_exceptions=False) as test_client:
        response = test_client.get(f"{BOOKS_URL}/{books[0]['isbn']}")
    assert _is_error(response, 500)
    error = response.json()["errors"][0]
    assert error["code"] == INTERNAL
    assert "secret" not in error["message"]


def test_custom_base_path(lib, books):
    with TestClient(create_app(lib, base="/library/v1")) as test_client:
        response = test_client.put("/library/v1/books", json=books[0])
        assert response.status_code == 201
        assert response.headers["location"] == f"{HOST}/library/v1/books/{books[0]['isbn']}"
        assert test_client.delete("/library/v1").status_code == 200
        assert _is_error(test_client.get(f"{BOOKS_URL}/{books[0]['isbn']}"), 404)


# --- CORS ---
def test_cors_reflects_origin(loaded_client, books):
    origin = "http://localhost:3000"
    response = loaded_client.get(f"{BOOKS_URL}/{books[0]['isbn']}", headers={"Origin": origin})
    assert response.headers["access-control-allow-origin"] == origin
    exposed = response.headers["access-control-expose-headers"]
    assert "Location" in exposed and "Content-Type" in exposed


def test_cors_preflight(client):
    response = client.options(BOOKS_URL, headers={
        "Origin": "http://localhost:3000",
        "Access-Control-Request-Method": "PUT",
        "Access-Control-Request-Headers": "Content-Type",
    })
    assert response.status_code == 200
    assert "PUT" in response.headers["access-control-allow-methods"]
