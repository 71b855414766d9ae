import json
import logging
import sqlite3
from threading import RLock
from typing import List, Optional

from lending_library.book import Book, Lend
from lending_library.result import DB, Ok, Result, VOID_RESULT, err

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


def create_tables(conn: sqlite3.Connection) -> None:
    """Creates the tables needed by the library if they do not exist."""
    cursor = conn.cursor()
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS books (
            isbn TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            authors TEXT NOT NULL,
            pages INTEGER NOT NULL,
            year INTEGER NOT NULL,
            publisher TEXT NOT NULL,
            n_copies INTEGER NOT NULL DEFAULT 1 CHECK(n_copies > 0),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS lendings (
            isbn TEXT NOT NULL,
            patron_id TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (isbn, patron_id),
            FOREIGN KEY (isbn) REFERENCES books(isbn) ON DELETE CASCADE
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_lendings_patron_id ON lendings(patron_id)")
    conn.commit()


class LibraryDao:
    """SQLite storage for books and lends.

    A single connection may be used from more than one thread,
    so every statement runs under one re-entrant lock. Failures are reported
    as DB errors rather than raised.
    """

    def __init__(self, db_file: str = MEMORY_DB) -> None:
        self.db_file = db_file
        self._lock = RLock()
        self._conn = sqlite3.connect(db_file, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        if db_file != MEMORY_DB:
            self._conn.execute("PRAGMA journal_mode=WAL;")
        create_tables(self._conn)

    # ------------------------- Books ------------------------- #
    def get_book(self, isbn: str) -> Result:
        """Return Ok(book) or Ok(None) when no book has that isbn."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT isbn, title, authors, pages, year, publisher, n_copies FROM books WHERE isbn = ?",
                    (isbn,),
                ).fetchone()
            return Ok(Book.from_dict(dict(row)) if row else None)
        except sqlite3.Error as exc:
            return self._db_error("get_book", exc)

    def add_book(self, book: Book) -> Result:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO books (isbn, title, authors, pages, year, publisher, n_copies) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (book.isbn, book.title, json.dumps(book.authors), book.pages,
                     book.year, book.publisher, book.n_copies),
                )
            return Ok(book)
        except sqlite3.Error as exc:
            return self._db_error("add_book", exc)

    def update_copies(self, isbn: str, n_copies: int) -> Result:
        try:
            with self._lock, self._conn:
                self._conn.execute("UPDATE books SET n_copies = ? WHERE isbn = ?", (n_copies, isbn))
            return VOID_RESULT
        except sqlite3.Error as exc:
            return self._db_error("update_copies", exc)

    def list_books(self) -> Result:
        """Return every book ordered by title."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT isbn, title, authors, pages, year, publisher, n_copies FROM books "
                    "ORDER BY lower(title), title"
                ).fetchall()
            return Ok([Book.from_dict(dict(row)) for row in rows])
        except sqlite3.Error as exc:
            return self._db_error("list_books", exc)

    # ------------------------- Lendings ------------------------- #
    def find_lendings(self, isbn: Optional[str] = None, patron_id: Optional[str] = None) -> Result:
        clauses: List[str] = []
        params: List[str] = []
        if isbn is not None:
            clauses.append("isbn = ?")
            params.append(isbn)
        if patron_id is not None:
            clauses.append("patron_id = ?")
            params.append(patron_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT isbn, patron_id FROM lendings{where} ORDER BY isbn, patron_id",
                    params,
                ).fetchall()
            return Ok([Lend(row["isbn"], row["patron_id"]) for row in rows])
        except sqlite3.Error as exc:
            return self._db_error("find_lendings", exc)

    def add_lend(self, lend: Lend) -> Result:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO lendings (isbn, patron_id) VALUES (?, ?)",
                    (lend.isbn, lend.patron_id),
                )
            return Ok(lend)
        except sqlite3.Error as exc:
            return self._db_error("add_lend", exc)

    def remove_lend(self, lend: Lend) -> Result:
        """Return Ok(True) when a lend was removed, Ok(False) when none existed."""
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM lendings WHERE isbn = ? AND patron_id = ?",
                    (lend.isbn, lend.patron_id),
                )
            return Ok(cursor.rowcount > 0)
        except sqlite3.Error as exc:
            return self._db_error("remove_lend", exc)

    # ------------------------- Housekeeping ------------------------- #
    def clear(self) -> Result:
        try:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM lendings")
                self._conn.execute("DELETE FROM books")
            return VOID_RESULT
        except sqlite3.Error as exc:
            return self._db_error("clear", exc)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _db_error(op: str, exc: sqlite3.Error) -> Result:
        logger.error("database error in %s: %s", op, exc)
        return err(f"database error: {exc}", DB)
