# Overview: Live interaction list that re-queries on change and keeps only the newest result.

from __future__ import annotations

import logging

from . import change_feed, interaction_service
from .visibility_service import InteractionFilters

logger = logging.getLogger(__name__)


class InteractionListing:
    """
    A scoped, filtered interaction list bound to one SessionContext.

    open() subscribes to interaction changes and loads; close() unsubscribes.
    Every reload takes a generation number from begin_reload(); a result is
    applied only if no newer reload has started since (last request wins).
    """

    def __init__(self, context, filters: InteractionFilters | None = None):
        if context is None:
            raise ValueError("A signed-in context is required")
        self.context = context
        self.filters = filters or InteractionFilters()
        self.items = []
        self.stats = interaction_service.compute_stats([])
        self.generation = 0
        self.applied_generation = 0
        self._subscription = None

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def open(self) -> "InteractionListing":
        if not self.is_open:
            session = self.context.session
            self._subscription = change_feed.subscribe(
                "interactions",
                self._on_change,
                owner_id=self.context.actor_id,
                session_id=session.id if session is not None else None,
            )
        self.reload()
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def begin_reload(self) -> int:
        self.generation += 1
        return self.generation

    def apply(self, generation: int, items: list) -> bool:
        """Store items fetched for generation; stale generations are discarded."""
        if generation != self.generation:
            logger.debug("Discarding stale interaction list (gen %s < %s)", generation, self.generation)
            return False
        self.items = items
        self.stats = interaction_service.compute_stats(items)
        self.applied_generation = generation
        return True

    def reload(self) -> bool:
        generation = self.begin_reload()
        items = interaction_service.list_interactions(self.context, self.filters)
        return self.apply(generation, items)

    def set_filters(self, filters: InteractionFilters | None) -> bool:
        self.filters = filters or InteractionFilters()
        return self.reload()

    def clear_filters(self) -> bool:
        return self.set_filters(None)

    def _on_change(self, change) -> None:
        if self.is_open:
            self.reload()
