from __future__ import annotations

import json
from dataclasses import dataclass


class Book:
    """A catalog entry together with the number of lendable copies."""

    def __init__(self, isbn: str, title: str, authors: list[str], pages: int, year: int,
                 publisher: str, n_copies: int = 1) -> None:
        self.isbn = isbn
        self.title = title
        self.authors = list(authors)
        self.pages = pages
        self.year = year
        self.publisher = publisher
        self.n_copies = n_copies

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {', '.join(self.authors)} (ISBN: {self.isbn})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        # n_copies changes in place, so only the isbn takes part
        return hash(self.isbn)

    def same_details(self, other: "Book") -> bool:
        """True when every field except the copy count matches."""
        mine = self.to_dict()
        theirs = other.to_dict()
        mine.pop("nCopies")
        theirs.pop("nCopies")
        return mine == theirs

    def to_dict(self) -> dict:
        return {
            "isbn": self.isbn,
            "title": self.title,
            "authors": list(self.authors),
            "pages": self.pages,
            "year": self.year,
            "publisher": self.publisher,
            "nCopies": self.n_copies,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # SQLite rows keep authors as a JSON array string
        authors = data.get("authors") or []
        if isinstance(authors, str):
            try:
                authors = json.loads(authors)
            except ValueError:
                authors = [authors]

        n_copies = data.get("nCopies", data.get("n_copies"))
        return Book(
            isbn=data["isbn"],
            title=data["title"],
            authors=authors,
            pages=data["pages"],
            year=data["year"],
            publisher=data["publisher"],
            n_copies=n_copies if n_copies is not None else 1,
        )


@dataclass(frozen=True)
class Lend:
    """A patron currently holding one copy of a book."""

    isbn: str
    patron_id: str

    def to_dict(self) -> dict:
        return {"isbn": self.isbn, "patronId": self.patron_id}

    @staticmethod
    def from_dict(data: dict) -> "Lend":
        return Lend(isbn=data["isbn"], patron_id=data.get("patronId", data.get("patron_id")))
