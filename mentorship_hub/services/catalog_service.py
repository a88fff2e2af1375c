"""
Catalog Resolver - domain/stack taxonomy and cascading filter options.

The catalog is a flat list of (domain, stack) pairs loaded once per
session. Two option sets are derived from it:
- domains: "All Domains" + every domain name, first-seen order
- stacks:  "All Stacks" + the stacks of the selected domain; only the
           sentinel when no domain is selected (no unscoped stack list)

Selecting a domain always resets the stack to "All Stacks", even when the
old stack also exists under the new domain.

If the catalog cannot be loaded the option sets stay sentinel-only and the
resolver does not retry on its own; calling load() again is the retry.
"""

import logging
from typing import List, Optional

from mentorship_hub.clients.base import CatalogService
from mentorship_hub.core.errors import CollaboratorFailure, ValidationFailure
from mentorship_hub.schemas.schemas import (
    ALL_DOMAINS,
    ALL_STACKS,
    CatalogEntry,
    QueryState,
)

logger = logging.getLogger(__name__)


def _unique(values) -> List[str]:
    return list(dict.fromkeys(values))


class CatalogResolver:

    def __init__(self, service: CatalogService):
        self.service = service
        self.entries: List[CatalogEntry] = []
        self.loaded = False

    async def load(self) -> bool:
        """
        Fetch the catalog if it is not loaded yet.

        Returns:
            True when the catalog is available, False when the fetch failed
            (option sets degrade to the sentinels).
        """
        if self.loaded:
            return True
        try:
            entries = await self.service.get_technical_stacks()
        except CollaboratorFailure as e:
            logger.error("Catalog load failed, filters limited to sentinels: %s", e)
            return False

        # Immutable for the rest of the session
        self.entries = list(entries)
        self.loaded = True
        logger.info("Catalog loaded: %d domain/stack pairs", len(self.entries))
        return True

    def list_domains(self) -> List[str]:
        return [ALL_DOMAINS] + _unique(e.domain_name for e in self.entries)

    def list_stacks(self, selected_domain: str) -> List[str]:
        if selected_domain == ALL_DOMAINS:
            return [ALL_STACKS]
        return [ALL_STACKS] + _unique(
            e.stack_name for e in self.entries if e.domain_name == selected_domain
        )

    def domain_id(self, domain_name: str) -> Optional[int]:
        for entry in self.entries:
            if entry.domain_name == domain_name:
                return entry.domain_id
        return None

    def stack_id(self, domain_name: str, stack_name: str) -> Optional[int]:
        # Scoped to the domain: two domains may share a stack name
        for entry in self.entries:
            if entry.domain_name == domain_name and entry.stack_name == stack_name:
                return entry.stack_id
        return None

    # ---------- filter transitions ----------

    def select_domain(self, query: QueryState, domain_name: str) -> QueryState:
        """New query with `domain_name` selected, stack reset and page 1."""
        if domain_name == ALL_DOMAINS:
            domain_id = None
        else:
            domain_id = self.domain_id(domain_name)
            if domain_id is None:
                raise ValidationFailure(f"Unknown domain '{domain_name}'", field="domain")

        return query.model_copy(update={
            "domain_name": domain_name,
            "domain_id": domain_id,
            "stack_name": ALL_STACKS,
            "stack_id": None,
            "page": 1,
        })

    def select_stack(self, query: QueryState, stack_name: str) -> QueryState:
        """New query with `stack_name` selected within the current domain and page 1."""
        if stack_name == ALL_STACKS:
            stack_id = None
        else:
            stack_id = self.stack_id(query.domain_name, stack_name)
            if stack_id is None:
                raise ValidationFailure(
                    f"Stack '{stack_name}' is not available for {query.domain_name}",
                    field="stack",
                )

        return query.model_copy(update={
            "stack_name": stack_name,
            "stack_id": stack_id,
            "page": 1,
        })
