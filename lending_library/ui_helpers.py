import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable controlling CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_errors(errors: List[Any]) -> None:
    """Print domain errors, one per line."""
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([e.to_dict() for e in errors], ensure_ascii=False))
        return
    for e in errors:
        if mode == "rich":
            _console.print(f"[bold red]{e.code}[/]: {e.message}")
        else:
            print(f"Error ({e.code}): {e.message}")


def print_search_result(envelope: Dict[str, Any]) -> None:
    """Print one page of search results followed by its navigation links.
    - plain: 'ISBN - Title by Authors' lines, then 'next: URL' / 'prev: URL'
    - json: the page envelope
    - rich: table of results
    """
    mode = get_output_mode()
    items = [item["result"] for item in envelope.get("result", [])]
    links = envelope.get("links", {})

    if mode == "json":
        print(json.dumps(envelope, ensure_ascii=False))
        return

    if not items:
        print("No books found.")
    elif mode == "rich":
        table = Table(title="Books", show_lines=True, header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Authors", style="white")
        for b in items:
            table.add_row(b["isbn"], b["title"], ", ".join(b["authors"]))
        _console.print(table)
    else:
        for b in items:
            print(f"{b['isbn']} - {b['title']} by {', '.join(b['authors'])}")

    for rel in ("next", "prev"):
        if rel in links:
            print(f"{rel}: {links[rel]['href']}")


def print_book(book: Dict[str, Any], borrowers: List[Dict[str, Any]]) -> None:
    """Print book details and the patrons currently holding copies."""
    mode = get_output_mode()
    patrons = [lend["patronId"] for lend in borrowers]

    if mode == "json":
        print(json.dumps({"book": book, "borrowers": patrons}, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]ISBN:[/] {book['isbn']}\n"
            f"[bold]Authors:[/] {', '.join(book['authors'])}\n"
            f"[bold]Publisher:[/] {book['publisher']} ({book['year']})\n"
            f"[bold]Pages:[/] {book['pages']}\n"
            f"[bold]Copies:[/] {book['nCopies']}\n"
            f"[bold]Borrowers:[/] {', '.join(patrons) or 'None'}"
        )
        _console.print(Panel.fit(content, title=book["title"], border_style="blue"))
    else:
        print(f"Title: {book['title']}")
        print(f"Authors: {', '.join(book['authors'])}")
        print(f"ISBN: {book['isbn']}")
        print(f"Publisher: {book['publisher']}")
        print(f"Year: {book['year']}")
        print(f"Pages: {book['pages']}")
        print(f"Copies: {book['nCopies']}")
        print(f"Borrowers: {', '.join(patrons) or 'None'}")


def print_lends(lends: List[Dict[str, Any]]) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(lends, ensure_ascii=False))
        return
    if not lends:
        print("No lendings.")
        return
    if mode == "rich":
        table = Table(title="Lendings", header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Patron", style="white")
        for lend in lends:
            table.add_row(lend["isbn"], lend["patronId"])
        _console.print(table)
    else:
        for lend in lends:
            print(f"{lend['isbn']} - {lend['patronId']}")
