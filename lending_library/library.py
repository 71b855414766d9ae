import logging
from typing import Any, Optional

from lending_library.book import Book, Lend
from lending_library.config import settings
from lending_library.database import LibraryDao
from lending_library.result import (
    BAD_REQ,
    EXISTS,
    NOT_FOUND,
    Err,
    Error,
    Ok,
    Result,
    err,
)
from lending_library.validators import (
    BookValidator,
    LendValidator,
    text_words,
    validate_paging,
)

logger = logging.getLogger(__name__)


class LendingLibrary:
    """Book inventory, search and lending rules on top of a LibraryDao.

    Every operation returns a Result; callers never see exceptions for
    validation, lookup or persistence failures.
    """

    def __init__(self, dao: LibraryDao, default_index: Optional[int] = None,
                 default_count: Optional[int] = None) -> None:
        self.dao = dao
        self.default_index = settings.default_index if default_index is None else default_index
        self.default_count = settings.default_count if default_count is None else default_count

    # ------------------------- Catalog ------------------------- #
    def add_book(self, req: Any) -> Result:
        """Add a book, or more copies of an already known book.

        Re-adding an isbn with identical details adds its nCopies to the
        stored count; different details for a known isbn fail with EXISTS.
        """
        valid = BookValidator.validate(req)
        if not valid.is_ok:
            return valid
        book: Book = valid.val

        found = self.dao.get_book(book.isbn)
        if not found.is_ok:
            return found
        existing: Optional[Book] = found.val
        if existing is None:
            return self.dao.add_book(book)

        if not existing.same_details(book):
            return err(f"inconsistent data for book {book.isbn}", EXISTS, "isbn")
        existing.n_copies += book.n_copies
        updated = self.dao.update_copies(existing.isbn, existing.n_copies)
        if not updated.is_ok:
            return updated
        logger.info("book %s now has %d copies", existing.isbn, existing.n_copies)
        return Ok(existing)

    def get_book(self, isbn: str) -> Result:
        found = self.dao.get_book((isbn or "").strip())
        if not found.is_ok:
            return found
        if found.val is None:
            return err(f"no book for isbn {isbn}", NOT_FOUND, "isbn")
        return found

    def find_books(self, req: Any) -> Result:
        """Find books whose title and authors contain every search word.

        `search` is required and must contain at least one word of two or
        more characters. Results are sorted by title, then sliced by
        `index` and `count`. Any positive count is honored, including the
        count + 1 lookahead requested by the web layer.
        """
        if not isinstance(req, dict):
            return err("search request must be an object", BAD_REQ)
        words = text_words(req.get("search") if isinstance(req.get("search"), str) else None)
        errors = []
        if not words:
            errors.append(Error("property search must specify at least one word", BAD_REQ, "search"))
        paging = validate_paging(req, self.default_index, self.default_count)
        if not paging.is_ok:
            errors.extend(paging.errors)
        if errors:
            return Err(errors)
        index, count = paging.val

        listed = self.dao.list_books()
        if not listed.is_ok:
            return listed
        matches = [
            book for book in listed.val
            if words <= text_words(" ".join([book.title, *book.authors]), min_len=1)
        ]
        return Ok(matches[index:index + count])

    # ------------------------- Lendings ------------------------- #
    def find_lendings(self, req: Any = None) -> Result:
        """Return lends filtered by optional `isbn` and `patronId`."""
        req = req or {}
        if not isinstance(req, dict):
            return err("lendings request must be an object", BAD_REQ)
        isbn = req.get("isbn")
        patron_id = req.get("patronId")
        return self.dao.find_lendings(
            isbn=isbn.strip().upper() if isinstance(isbn, str) else None,
            patron_id=patron_id.strip() if isinstance(patron_id, str) else None,
        )

    def checkout_book(self, req: Any) -> Result:
        valid = LendValidator.validate(req)
        if not valid.is_ok:
            return valid
        lend: Lend = valid.val

        found = self.dao.get_book(lend.isbn)
        if not found.is_ok:
            return found
        book: Optional[Book] = found.val
        if book is None:
            return err(f"unknown book {lend.isbn}", BAD_REQ, "isbn")

        lends = self.dao.find_lendings(isbn=lend.isbn)
        if not lends.is_ok:
            return lends
        if any(l.patron_id == lend.patron_id for l in lends.val):
            return err(f"patron {lend.patron_id} already has book {lend.isbn} checked out",
                       BAD_REQ, "isbn")
        if len(lends.val) >= book.n_copies:
            return err(f"no copies of book {lend.isbn} are available for checkout",
                       BAD_REQ, "isbn")
        return self.dao.add_lend(lend)

    def return_book(self, req: Any) -> Result:
        valid = LendValidator.validate(req)
        if not valid.is_ok:
            return valid
        lend: Lend = valid.val

        removed = self.dao.remove_lend(lend)
        if not removed.is_ok:
            return removed
        if not removed.val:
            return err(f"no checkout of book {lend.isbn} by patron {lend.patron_id}",
                       BAD_REQ, "isbn")
        return Ok(lend)

    # ------------------------- Housekeeping ------------------------- #
    def clear(self) -> Result:
        return self.dao.clear()
