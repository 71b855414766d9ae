"""HATEOAS response envelopes.

Success envelopes carry navigation links next to the result:

    {"isOk": true, "status": 200, "links": {"self": {...}}, "result": ...}

Paged envelopes wrap every item with its own self link and add next/prev
links when there are more results in that direction.
"""

from typing import Any, Dict, List, Optional

from fastapi import Request
from pydantic import BaseModel

from lending_library.config import settings

HTTP_200 = 200


class Link(BaseModel):
    rel: str          # "self", "next", "prev"
    href: str         # absolute URL
    method: str       # "GET", "PUT", "DELETE"


class SelfLinks(BaseModel):
    self: Link


class NavLinks(SelfLinks):
    next: Optional[Link] = None
    prev: Optional[Link] = None


def request_url(request: Request) -> str:
    """Return the original URL for request, including its query string."""
    return str(request.url)


def self_href(request: Request, id: str = "") -> str:
    """Return the URL of request, extended with /id when id is given."""
    if id:
        return str(request.url.replace(query="")).rstrip("/") + f"/{id}"
    return request_url(request)


def page_link(request: Request, n_results: int, direction: int,
              default_count: Optional[int] = None,
              default_index: Optional[int] = None) -> Optional[str]:
    """Return the next (direction 1) or prev (direction -1) page URL, or None.

    No next link is produced unless n_results exceeds the requested count,
    which holds when count + 1 results were asked for and more remain.
    """
    if default_count is None:
        default_count = settings.default_count
    if default_index is None:
        default_index = settings.default_index
    count = int(request.query_params.get("count", default_count))
    index0 = int(request.query_params.get("index", default_index))
    if direction > 0:
        if n_results <= count:
            return None
        index = index0 + count
    else:
        if index0 <= 0:
            return None
        index = max(0, index0 - count)
    return str(request.url.include_query_params(index=index, count=count))


def self_result(request: Request, result: Any, status: int = HTTP_200) -> Dict[str, Any]:
    """Return a success envelope for a single result."""
    links = SelfLinks(self=Link(rel="self", href=self_href(request), method=request.method))
    envelope = {
        "isOk": True,
        "status": status,
        "links": links.model_dump(),
    }
    if result is not None:
        envelope["result"] = result
    return envelope


def paged_result(request: Request, id_key: str, results: List[Dict[str, Any]],
                 default_count: Optional[int] = None,
                 default_index: Optional[int] = None) -> Dict[str, Any]:
    """Return a paged envelope for results fetched with one lookahead item."""
    if default_count is None:
        default_count = settings.default_count
    collection = str(request.url.replace(query="")).rstrip("/")
    items = [
        {
            "result": r,
            "links": SelfLinks(
                self=Link(rel="self", href=f"{collection}/{r[id_key]}", method="GET")
            ).model_dump(),
        }
        for r in results
    ]
    links = NavLinks(self=Link(rel="self", href=self_href(request), method="GET"))
    next_href = page_link(request, len(results), +1, default_count, default_index)
    if next_href:
        links.next = Link(rel="next", href=next_href, method="GET")
    prev_href = page_link(request, len(results), -1, default_count, default_index)
    if prev_href:
        links.prev = Link(rel="prev", href=prev_href, method="GET")
    count = int(request.query_params.get("count", default_count))
    return {
        "isOk": True,
        "status": HTTP_200,
        "links": links.model_dump(exclude_none=True),
        "result": items[:count],
    }
