import logging
import time
from typing import Any, Dict, Optional

import httpx

from lending_library.config import settings
from lending_library.result import UNKNOWN, Err, Error, Ok, Result, err

logger = logging.getLogger(__name__)


class LibraryWs:
    """Client for the lending library web service.

    Collection and item URLs are taken from the links returned by the
    server wherever possible, so callers can follow next/prev links
    without building URLs themselves.
    """

    def __init__(self, url: Optional[str] = None, base: Optional[str] = None,
                 client: Optional[httpx.Client] = None, retries: int = 3,
                 backoff: float = 0.5) -> None:
        self.url = (url or settings.ws_url).rstrip("/")
        base = settings.base_path if base is None else base
        self.api = f"{self.url}{base.rstrip('/')}"
        self.retries = retries
        self.backoff = backoff
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=settings.client_timeout,
            follow_redirects=True,
        )

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Dict[str, Any]) -> Result:
        """Add book; on success the envelope's result is the stored book."""
        return self._request("PUT", f"{self.api}/books", json=book)

    def get_book(self, isbn: str) -> Result:
        return self.get_book_by_url(f"{self.api}/books/{isbn}")

    def get_book_by_url(self, url: str | httpx.URL) -> Result:
        return self._request("GET", str(url))

    def find_books(self, search: str, index: Optional[int] = None,
                   count: Optional[int] = None) -> Result:
        params: Dict[str, Any] = {"search": search}
        if index is not None:
            params["index"] = index
        if count is not None:
            params["count"] = count
        url = httpx.URL(f"{self.api}/books", params=params)
        return self.find_books_by_url(url)

    def find_books_by_url(self, url: str | httpx.URL) -> Result:
        """Return the paged envelope at url, as found in next/prev links."""
        return self._request("GET", str(url))

    # ------------------------- Lendings ------------------------- #
    def get_lends(self, isbn: Optional[str] = None, patron_id: Optional[str] = None) -> Result:
        """Return Ok(list of lends) matching the given filters."""
        params = {}
        if isbn:
            params["isbn"] = isbn
        if patron_id:
            params["patronId"] = patron_id
        return self._unwrap(self._request("GET", f"{self.api}/lendings", params=params))

    def checkout_book(self, lend: Dict[str, str]) -> Result:
        return self._unwrap(self._request("PUT", f"{self.api}/lendings", json=lend))

    def return_book(self, lend: Dict[str, str]) -> Result:
        return self._unwrap(self._request("DELETE", f"{self.api}/lendings", json=lend))

    def clear(self) -> Result:
        return self._request("DELETE", self.api)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "LibraryWs":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------- HTTP helpers ------------------------- #
    @staticmethod
    def _unwrap(result: Result) -> Result:
        if not result.is_ok:
            return result
        return Ok(result.val.get("result"))

    def _request(self, method: str, url: str, **kwargs: Any) -> Result:
        """Send a request and decode the response envelope.

        GET requests are retried with exponential backoff on transport errors.
        """
        attempts = self.retries if method == "GET" else 1
        response: Optional[httpx.Response] = None
        for attempt in range(attempts):
            try:
                response = self._client.request(method, url, **kwargs)
                break
            except httpx.TransportError as exc:
                if attempt < attempts - 1:
                    time.sleep(self.backoff * (2 ** attempt))
                    continue
                logger.warning("%s %s failed: %s", method, url, exc)
                return err(f"{method} {url}: {exc}", UNKNOWN)
            except httpx.HTTPError as exc:
                logger.warning("%s %s failed: %s", method, url, exc)
                return err(f"{method} {url}: {exc}", UNKNOWN)
        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Result:
        try:
            body = response.json()
        except ValueError:
            return err(f"bad response from server: status {response.status_code}", UNKNOWN)
        if isinstance(body, dict) and body.get("isOk"):
            return Ok(body)
        raw_errors = body.get("errors") if isinstance(body, dict) else None
        errors = [Error.from_dict(e) for e in raw_errors or [] if isinstance(e, dict)]
        if not errors:
            errors = [Error(f"request failed with status {response.status_code}", UNKNOWN)]
        return Err(errors)
