"""
Paginated directory listing

Providers cap one list call (usually at 1000 keys) and hand back a marker
when the result is truncated. list_all keeps calling until the provider
reports the last page and returns the complete, materialized listing.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Set

from ...exceptions import ProviderError
from .models import ObjectRecord
from .normalizer import directory_record

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_DEPTH = 64
DELIMITER = "/"


@dataclass
class ListingPage:
    """One provider list call, already normalized by the adapter"""
    entries: List[ObjectRecord] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
    next_marker: Optional[str] = None
    truncated: bool = False


# fetch_page(prefix, delimiter, marker, max_keys) -> ListingPage
PageFetcher = Callable[[str, str, str, int], ListingPage]


def iter_pages(
    fetch_page: PageFetcher,
    prefix: str,
    delimiter: str,
    page_size: int = DEFAULT_PAGE_SIZE
) -> Iterator[ListingPage]:
    """Yield pages for one prefix, following markers until the last page"""
    marker = ""
    while True:
        page = fetch_page(prefix, delimiter, marker, page_size)
        yield page
        if not page.truncated:
            return
        if not page.next_marker or page.next_marker == marker:
            raise ProviderError(f"Truncated listing of '{prefix}' returned no usable marker")
        marker = page.next_marker


def list_all(
    fetch_page: PageFetcher,
    prefix: str,
    recursive: bool = False,
    descend_prefixes: bool = False,
    include_self: bool = False,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_depth: int = DEFAULT_MAX_DEPTH
) -> List[ObjectRecord]:
    """
    List everything under prefix

    Args:
        fetch_page: Adapter callback issuing one provider list call
        prefix: Listing prefix ('' or ending in '/')
        recursive: Return objects below nested directories too
        descend_prefixes: For providers that only group one level per call;
            recursive listings then walk every common prefix instead of
            dropping the delimiter
        include_self: Keep the placeholder object whose key equals prefix
        page_size: Keys requested per call
        max_depth: Deepest prefix level walked when descending

    Returns:
        Records in provider key order; flat listings add one dir record per
        common prefix. Every key appears once.

    Raises:
        ProviderError: a page failed, or the prefix tree is deeper than max_depth
    """
    delimiter = DELIMITER if (not recursive or descend_prefixes) else ""
    records: List[ObjectRecord] = []
    seen: Set[str] = set()
    visited: Set[str] = {prefix}
    queue = deque([(prefix, 0)])

    while queue:
        current, depth = queue.popleft()
        if depth > max_depth:
            raise ProviderError(f"Listing of '{prefix}' exceeds max depth {max_depth}")

        for page in iter_pages(fetch_page, current, delimiter, page_size):
            for record in page.entries:
                if not record.path.startswith(prefix):
                    continue
                if record.path == prefix and not include_self:
                    continue
                if record.path in seen:
                    continue
                seen.add(record.path)
                records.append(record)

            for common in page.common_prefixes:
                if not common.startswith(prefix) or common == current:
                    continue
                if recursive:
                    if common not in visited:
                        visited.add(common)
                        queue.append((common, depth + 1))
                elif common not in seen:
                    seen.add(common)
                    records.append(directory_record(common))

    logger.debug(f"列出目录完成: '{prefix}' (递归: {recursive}, 共{len(records)}项)")
    return records


def chunked(items: List[str], size: int = DEFAULT_PAGE_SIZE) -> Iterator[List[str]]:
    """Split keys into batch-delete sized chunks"""
    for start in range(0, len(items), size):
        yield items[start:start + size]
