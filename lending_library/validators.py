import re
from datetime import date
from typing import Any, Optional

from lending_library.book import Book, Lend
from lending_library.result import BAD_REQ, Err, Error, Ok, Result

ISBN_RE = re.compile(r"^\d{3}-\d{3}-\d{3}-[\dX]$")
WORD_RE = re.compile(r"\w+")
DIGITS_RE = re.compile(r"\s*\d+\s*")

# Gutenberg's press
MIN_YEAR = 1448

BOOK_STRING_FIELDS = ("isbn", "title", "publisher")
BOOK_INT_FIELDS = ("pages", "year")


class ISBNValidator:
    """ISBN checks for catalog entries of the form ddd-ddd-ddd-d."""

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip().upper()

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        if not isbn:
            return False
        return ISBN_RE.match(ISBNValidator.normalize_isbn(isbn)) is not None


def text_words(text: Optional[str], min_len: int = 2) -> set[str]:
    """Return the lower-cased words in text having at least min_len characters."""
    return {w.lower() for w in WORD_RE.findall(text or "") if len(w) >= min_len}


def _as_int(value: Any) -> Optional[int]:
    """Coerce JSON numbers with an integral value to int; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _is_nonblank_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


class BookValidator:
    """Validates an add-book request, collecting every problem found."""

    @staticmethod
    def validate(req: Any) -> Result:
        if not isinstance(req, dict):
            return Err([Error("book must be a JSON object", BAD_REQ)])
        errors: list[Error] = []

        for name in BOOK_STRING_FIELDS:
            value = req.get(name)
            if value is None:
                errors.append(Error(f"property {name} is required", BAD_REQ, name))
            elif not _is_nonblank_str(value):
                errors.append(Error(f"property {name} must be a non-empty string", BAD_REQ, name))

        for name in BOOK_INT_FIELDS:
            value = req.get(name)
            if value is None:
                errors.append(Error(f"property {name} is required", BAD_REQ, name))
            elif _as_int(value) is None:
                errors.append(Error(f"property {name} must be an integer", BAD_REQ, name))

        authors = req.get("authors")
        if authors is None:
            errors.append(Error("property authors is required", BAD_REQ, "authors"))
        elif not isinstance(authors, list) or not authors:
            errors.append(Error("property authors must be a non-empty list", BAD_REQ, "authors"))
        elif not all(_is_nonblank_str(a) for a in authors):
            errors.append(Error("every author must be a non-empty string", BAD_REQ, "authors"))

        n_copies = _as_int(req.get("nCopies", 1))
        if n_copies is None:
            errors.append(Error("property nCopies must be an integer", BAD_REQ, "nCopies"))
        elif n_copies <= 0:
            errors.append(Error("property nCopies must be positive", BAD_REQ, "nCopies"))

        if errors:
            return Err(errors)

        isbn = ISBNValidator.normalize_isbn(req["isbn"])
        if not ISBNValidator.is_valid_isbn(isbn):
            errors.append(Error(f"bad isbn {req['isbn']}: must have form ddd-ddd-ddd-d", BAD_REQ, "isbn"))
        pages = _as_int(req["pages"])
        if pages <= 0:
            errors.append(Error("property pages must be positive", BAD_REQ, "pages"))
        year = _as_int(req["year"])
        if not MIN_YEAR <= year <= date.today().year:
            errors.append(Error(f"property year must be between {MIN_YEAR} and the current year",
                                BAD_REQ, "year"))
        if errors:
            return Err(errors)

        return Ok(Book(
            isbn=isbn,
            title=req["title"],
            authors=authors,
            pages=pages,
            year=year,
            publisher=req["publisher"],
            n_copies=n_copies,
        ))


class LendValidator:
    """Validates checkout and return requests."""

    @staticmethod
    def validate(req: Any) -> Result:
        if not isinstance(req, dict):
            return Err([Error("lend must be a JSON object", BAD_REQ)])
        errors = [
            Error(f"property {name} must be a non-empty string", BAD_REQ, name)
            for name in ("isbn", "patronId")
            if not _is_nonblank_str(req.get(name))
        ]
        if errors:
            return Err(errors)
        return Ok(Lend(isbn=ISBNValidator.normalize_isbn(req["isbn"]),
                       patron_id=req["patronId"].strip()))


def validate_paging(req: dict, default_index: int, default_count: int) -> Result:
    """Return Ok((index, count)) built from request parameters.

    Query strings arrive as text, so digit strings are accepted as well as ints.
    """
    errors: list[Error] = []
    values = {}
    for name, default, minimum in (("index", default_index, 0), ("count", default_count, 1)):
        raw = req.get(name, default)
        if isinstance(raw, str) and DIGITS_RE.fullmatch(raw):
            raw = int(raw)
        value = _as_int(raw)
        if value is None or value < minimum:
            errors.append(Error(f"property {name} must be an integer >= {minimum}", BAD_REQ, name))
        else:
            values[name] = value
    if errors:
        return Err(errors)
    return Ok((values["index"], values["count"]))
