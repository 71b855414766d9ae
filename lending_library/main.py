import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn
from rich.console import Console
from rich.prompt import Confirm

from lending_library.api import create_app
from lending_library.client import LibraryWs
from lending_library.config import settings
from lending_library.database import LibraryDao
from lending_library.library import LendingLibrary
from lending_library.log import configure_logging
from lending_library.result import BAD_REQ, VOID_RESULT, Result, err
from lending_library.ui_helpers import (
    print_book,
    print_errors,
    print_lends,
    print_search_result,
    set_output_mode,
)

APP_NAME = "Lending Library CLI"
MIN_PORT = 1024

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(help=APP_NAME)

_state = {"url": None}


def _ws() -> LibraryWs:
    return LibraryWs(url=_state["url"])


def _fail(result: Result) -> None:
    print_errors(result.errors)
    raise typer.Exit(code=1)


def _read_books(path: Path) -> List[dict]:
    """Read a JSON file holding one book object or an array of them."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def load_data(library: LendingLibrary, paths: List[Path]) -> Result:
    """Clear library, then add every book found in the JSON files at paths."""
    cleared = library.clear()
    if not cleared.is_ok:
        return cleared
    for path in paths:
        try:
            books = _read_books(path)
        except (OSError, ValueError) as exc:
            return err(f"cannot read books from {path}: {exc}", BAD_REQ)
        for book in books:
            added = library.add_book(book)
            if not added.is_ok:
                return added
        logger.info("loaded %d books from %s", len(books), path)
    return VOID_RESULT


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        help="Web service URL used by client commands",
    ),
):
    """Global options for the CLI."""
    if output:
        set_output_mode(output)
    _state["url"] = url


@app.command("serve")
def cli_serve(
    data: Optional[List[Path]] = typer.Argument(None, help="Books JSON files loaded at startup"),
    host: str = typer.Option(settings.api_host, "--host", help="Interface to listen on"),
    port: int = typer.Option(settings.api_port, "--port", "-p", help="Port to listen on"),
    db_file: str = typer.Option(settings.database_file, "--db", help="SQLite database file"),
    base: str = typer.Option(settings.base_path, "--base", help="Base path for all routes"),
):
    """Clear the store, load books and serve the web service."""
    if port < MIN_PORT:
        print(f"bad port {port}: must be >= {MIN_PORT}")
        raise typer.Exit(code=1)

    configure_logging()
    dao = LibraryDao(db_file)
    try:
        library = LendingLibrary(dao)
        paths = list(data) if data else [Path(p) for p in settings.data_files]
        loaded = load_data(library, paths)
        if not loaded.is_ok:
            _fail(loaded)

        ssl = {}
        if settings.ssl_keyfile and settings.ssl_certfile:
            ssl = {"ssl_keyfile": settings.ssl_keyfile, "ssl_certfile": settings.ssl_certfile}
        scheme = "https" if ssl else "http"
        print(f"Starting web service on {scheme}://{host}:{port}{base}")
        uvicorn.run(create_app(library, base=base), host=host, port=port,
                    log_level=settings.log_level.lower(), **ssl)
    finally:
        dao.close()


@app.command("add")
def cli_add(file_path: Path = typer.Argument(..., help="JSON file with a book or an array of books")):
    """Add books from a JSON file through the web service."""
    try:
        books = _read_books(file_path)
    except (OSError, ValueError) as e:
        print(f"Could not read {file_path}: {e}")
        raise typer.Exit(code=1)

    failed = 0
    with _ws() as ws:
        for book in books:
            result = ws.add_book(book)
            if result.is_ok:
                added = result.val["result"]
                print(f"Successfully added: {added['title']} ({added['isbn']})")
            else:
                failed += 1
                print_errors(result.errors)
    if failed:
        raise typer.Exit(code=1)


@app.command("show")
def cli_show(isbn: str):
    """Show a book and the patrons currently holding it."""
    with _ws() as ws:
        result = ws.get_book(isbn)
        if not result.is_ok:
            _fail(result)
        book = result.val["result"]
        lends = ws.get_lends(isbn=book["isbn"])
        if not lends.is_ok:
            _fail(lends)
    print_book(book, lends.val)


@app.command("search")
def cli_search(
    query: Optional[str] = typer.Argument(None, help="Search words"),
    index: Optional[int] = typer.Option(None, "--index", "-i", help="Index of the first result"),
    count: Optional[int] = typer.Option(None, "--count", "-c", help="Results per page"),
    link: Optional[str] = typer.Option(None, "--link", help="Follow a next/prev link instead"),
):
    """Search the catalog; prints next/prev links for further pages."""
    if not query and not link:
        print("Provide search words or a --link to follow.")
        raise typer.Exit(code=1)
    with _ws() as ws:
        result = ws.find_books_by_url(link) if link else ws.find_books(query, index, count)
    if not result.is_ok:
        _fail(result)
    print_search_result(result.val)


@app.command("lendings")
def cli_lendings(
    isbn: Optional[str] = typer.Option(None, "--isbn", help="Only lends of this book"),
    patron: Optional[str] = typer.Option(None, "--patron", help="Only lends to this patron"),
):
    """List current lendings."""
    with _ws() as ws:
        result = ws.get_lends(isbn=isbn, patron_id=patron)
    if not result.is_ok:
        _fail(result)
    print_lends(result.val)


@app.command("checkout")
def cli_checkout(isbn: str, patron_id: str):
    """Check out a copy of a book to a patron."""
    with _ws() as ws:
        result = ws.checkout_book({"isbn": isbn, "patronId": patron_id})
    if not result.is_ok:
        _fail(result)
    print(f"Checked out {isbn} to {patron_id}")


@app.command("return")
def cli_return(isbn: str, patron_id: str):
    """Return a book checked out by a patron."""
    with _ws() as ws:
        result = ws.return_book({"isbn": isbn, "patronId": patron_id})
    if not result.is_ok:
        _fail(result)
    print(f"Returned {isbn} from {patron_id}")


@app.command("clear")
def cli_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")):
    """Remove every book and lending from the web service."""
    if not yes and not Confirm.ask("Remove all books and lendings?", console=console):
        print("Cancelled.")
        return
    with _ws() as ws:
        result = ws.clear()
    if not result.is_ok:
        _fail(result)
    print("Library cleared.")


if __name__ == "__main__":
    app()
