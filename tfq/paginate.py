"""Generic pagination driver for hosted-API list calls.

Every list request option type inherits ListOptions, which gives it a
page_number the driver can advance. Resource-specific fields (filters,
search terms, includes) live on the subclass and are left to the caller and
to the optional augmenter.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


@dataclass
class ListOptions:
    page_number: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def query_params(self):
        return {"page[number]": self.page_number, "page[size]": self.page_size}


@dataclass
class Pagination:
    current_page: int = 1
    next_page: int = 0
    total_pages: int = 0
    total_count: int = 0

    @classmethod
    def from_meta(cls, meta):
        pagination = (meta or {}).get("pagination") or {}
        return cls(
            current_page=pagination.get("current-page") or 1,
            next_page=pagination.get("next-page") or 0,
            total_pages=pagination.get("total-pages") or 0,
            total_count=pagination.get("total-count") or 0,
        )


@dataclass
class StateVersionListOptions(ListOptions):
    organization: str = ""
    workspace: str = ""
    filters: dict = field(default_factory=dict)

    def query_params(self):
        params = super().query_params()
        params["filter[organization][name]"] = self.organization
        params["filter[workspace][name]"] = self.workspace
        params.update(self.filters)
        return params


@dataclass
class RunListOptions(ListOptions):
    workspace_names: str = ""
    status: str = ""

    def query_params(self):
        params = super().query_params()
        if self.workspace_names:
            params["filter[workspace_names]"] = self.workspace_names
        if self.status:
            params["filter[status]"] = self.status
        return params


@dataclass
class WorkspaceListOptions(ListOptions):
    search: str = ""
    project_id: str = ""
    tags: List[str] = field(default_factory=list)

    def query_params(self):
        params = super().query_params()
        if self.search:
            params["search[name]"] = self.search
        if self.project_id:
            params["filter[project][id]"] = self.project_id
        if self.tags:
            params["search[tags]"] = ",".join(self.tags)
        return params


def page_size_for(limit, default=DEFAULT_PAGE_SIZE):
    """Shrink the page when fewer than a full page of items is wanted."""
    if limit and 0 < limit < default:
        return limit
    return default


def paginate(options, fetch, augmenter=None, limit: Optional[int] = None):
    """Drive fetch(options) -> (items, Pagination) until the last page.

    augmenter(options), when given, runs before every page and may mutate
    the options (e.g. inject a server-side filter). Stops once limit items
    have been collected; the result is truncated to limit.
    """
    results = []

    while True:
        if augmenter is not None:
            augmenter(options)

        items, pagination = fetch(options)
        results.extend(items)

        if limit is not None and limit > 0 and len(results) >= limit:
            del results[limit:]
            break

        logger.debug("page: %d, total: %d", pagination.current_page, len(results))

        if not pagination.next_page:
            break
        options.page_number = pagination.next_page

    return results
