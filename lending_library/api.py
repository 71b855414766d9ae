import json
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from lending_library.config import settings
from lending_library.envelopes import paged_result, self_href, self_result
from lending_library.errors import error_response, register_error_handlers
from lending_library.library import LendingLibrary
from lending_library.log import TRACE_LOGGER
from lending_library.result import UNKNOWN, Err, Error, Result
from lending_library.validators import validate_paging

logger = logging.getLogger(__name__)
trace_logger = logging.getLogger(TRACE_LOGGER)

HTTP_201 = 201


def create_app(library: LendingLibrary, base: Optional[str] = None,
               trace: Optional[bool] = None) -> FastAPI:
    """Create the web service application for library.

    Routes are mounted under base (default from settings, normally /api).
    """
    base = (settings.base_path if base is None else base).rstrip("/")
    trace = settings.trace if trace is None else trace

    app = FastAPI(title=settings.app_name, version=settings.app_version)
    app.state.library = library
    app.state.base = base

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.cors_origin_regex,
        allow_methods=["GET", "PUT", "DELETE"],
        allow_headers=["Content-Type"],
        expose_headers=["Location", "Content-Type"],
    )

    # --- Request trace ---
    if trace:
        @app.middleware("http")
        async def trace_requests(request: Request, call_next):
            size = request.headers.get("content-length", "0")
            trace_logger.info("%s %s (%s body bytes)", request.method, request.url, size)
            return await call_next(request)

    register_error_handlers(app)

    app.add_api_route(f"{base}/books", do_add_book, methods=["PUT"])
    app.add_api_route(f"{base}/books/{{isbn}}", do_get_book, methods=["GET"])
    app.add_api_route(f"{base}/books", do_find_books, methods=["GET"])
    app.add_api_route(f"{base}/lendings", do_get_lendings, methods=["GET"])
    app.add_api_route(f"{base}/lendings", do_checkout_book, methods=["PUT"])
    app.add_api_route(f"{base}/lendings", do_return_book, methods=["DELETE"])
    app.add_api_route(base or "/", do_clear, methods=["DELETE"])

    return app


# --- Helpers ---
def _library(request: Request) -> LendingLibrary:
    return request.app.state.library


async def _json_body(request: Request) -> Any:
    """Return the decoded JSON body; an empty body reads as an empty object.

    Bodies that are not UTF-8 JSON raise json.JSONDecodeError for the
    registered handler.
    """
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise json.JSONDecodeError("body is not valid UTF-8",
                                   raw.decode("utf-8", "replace"), exc.start) from exc
    return json.loads(text)


async def _call(op: Callable[..., Result], *args: Any) -> Result:
    """Run a blocking domain operation in the threadpool.

    Exceptions it raises are turned into errors.
    """
    try:
        return await run_in_threadpool(op, *args)
    except Exception as exc:
        logger.exception("%s raised %s", getattr(op, "__name__", op), type(exc).__name__)
        return Err([Error(str(exc) or type(exc).__name__, UNKNOWN)])


# --- Route handlers ---
async def do_add_book(request: Request) -> JSONResponse:
    """Add a book; responds 201 with Location set to the book's URL."""
    body = await _json_body(request)
    result = await _call(_library(request).add_book, body)
    if not result.is_ok:
        return error_response(result)
    book = result.val.to_dict()
    envelope = self_result(request, book, HTTP_201)
    return JSONResponse(
        status_code=HTTP_201,
        content=envelope,
        headers={"Location": self_href(request, book["isbn"])},
    )


async def do_get_book(request: Request, isbn: str) -> JSONResponse:
    result = await _call(_library(request).get_book, isbn)
    if not result.is_ok:
        return error_response(result)
    return JSONResponse(content=self_result(request, result.val.to_dict()))


async def do_find_books(request: Request) -> JSONResponse:
    """Paged book search.

    One more result than the page size is requested so the next link is
    produced only when further results exist.
    """
    library = _library(request)
    query = dict(request.query_params)
    paging = validate_paging(query, library.default_index, library.default_count)
    if not paging.is_ok:
        return error_response(paging)
    index, count = paging.val
    result = await _call(library.find_books, {**query, "index": index, "count": count + 1})
    if not result.is_ok:
        return error_response(result)
    books = [book.to_dict() for book in result.val]
    return JSONResponse(content=paged_result(
        request, "isbn", books,
        default_index=library.default_index, default_count=library.default_count,
    ))


async def do_get_lendings(request: Request) -> JSONResponse:
    result = await _call(_library(request).find_lendings, dict(request.query_params))
    if not result.is_ok:
        return error_response(result)
    lends = [lend.to_dict() for lend in result.val]
    return JSONResponse(content=self_result(request, lends))


async def do_checkout_book(request: Request) -> JSONResponse:
    body = await _json_body(request)
    result = await _call(_library(request).checkout_book, body)
    if not result.is_ok:
        return error_response(result)
    return JSONResponse(content=self_result(request, result.val.to_dict()))


async def do_return_book(request: Request) -> JSONResponse:
    body = await _json_body(request)
    result = await _call(_library(request).return_book, body)
    if not result.is_ok:
        return error_response(result)
    return JSONResponse(content=self_result(request, True))


async def do_clear(request: Request) -> JSONResponse:
    """Remove every book and lend."""
    result = await _call(_library(request).clear)
    if not result.is_ok:
        return error_response(result)
    return JSONResponse(content=self_result(request, None))
