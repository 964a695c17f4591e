"""Lazily loaded tree nodes for the task tree presenter.

An ExpandableNode wraps one item (a task, or None for the invisible root)
together with a children-loader coroutine. Expanding a node fetches its
direct children only; collapsed nodes fetch nothing. Every load carries the
node's generation number so a response that arrives after the node was
collapsed or re-expanded is discarded rather than applied.

The node knows nothing about Textual: views subscribe with add_listener()
and re-render when a node reports a change.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Generic, Hashable, List, Optional, Sequence, TypeVar

from tasktree.config import PresenterSettings
from tasktree.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ChildLoader = Callable[[Optional[T]], Awaitable[Sequence[T]]]
KeyFunc = Callable[[T], Hashable]
Listener = Callable[["ExpandableNode[T]"], None]

# Failures worth another attempt; anything else is surfaced immediately
RETRYABLE_ERRORS = (asyncio.TimeoutError, ConnectionError)


class ChildLoadError(Exception):
    """Raised when a node's children could not be fetched within the retry budget."""

    def __init__(self, key: Optional[Hashable], attempts: int, cause: BaseException) -> None:
        super().__init__(f"Loading children of {key} failed after {attempts} attempt(s): {cause!r}")
        self.key = key
        self.attempts = attempts
        self.cause = cause


class ExpandableNode(Generic[T]):
    """
    One node of a lazily loaded tree with its own local UI state.

    Attributes:
        item: The wrapped item (None for the root of the tree)
        parent: Enclosing node, None for the root
        expanded: Whether the node is open
        show_details: Whether the view shows the item's details
        children: Child nodes from the last applied load
        loaded: Whether children reflect a completed load
        loading: Whether a load is in flight
        error: Last load failure, cleared by the next load
        generation: Incremented by every load and collapse
    """

    def __init__(
        self,
        item: Optional[T],
        loader: ChildLoader,
        key: KeyFunc,
        parent: Optional["ExpandableNode[T]"] = None,
        settings: Optional[PresenterSettings] = None,
        retry_delay: float = 0.0,
    ) -> None:
        """
        Create a node.

        Args:
            item: Item to wrap, or None for the root
            loader: Coroutine returning the direct children of an item
            key: Extracts a stable identity from an item
            parent: Enclosing node
            settings: Timeout and retry bounds for loads
            retry_delay: Seconds to wait between attempts
        """
        self.item = item
        self.loader = loader
        self.key_func = key
        self.parent = parent
        self.settings = settings or PresenterSettings()
        self.retry_delay = retry_delay

        self.expanded = False
        self.show_details = False
        self.children: List["ExpandableNode[T]"] = []
        self.loaded = False
        self.loading = False
        self.error: Optional[BaseException] = None
        self.generation = 0

        self._listeners: List[Listener] = []

    def __repr__(self) -> str:
        return f"<ExpandableNode(key={self.key}, expanded={self.expanded}, children={len(self.children)})>"

    @property
    def key(self) -> Optional[Hashable]:
        return self.key_func(self.item) if self.item is not None else None

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def ancestors(self) -> List["ExpandableNode[T]"]:
        """Enclosing nodes, nearest first."""
        chain = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        return chain

    # ==============================================================================
    # LISTENERS
    # ==============================================================================

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def rederive(self) -> None:
        """Ask views to re-render this node from the data they already hold."""
        self._emit()

    # ==============================================================================
    # STATE TRANSITIONS
    # ==============================================================================

    async def expand(self) -> bool:
        """
        Open the node and fetch its direct children if not already loaded.

        Returns:
            True if children are loaded after the call
        """
        if self.expanded and (self.loaded or self.loading):
            return self.loaded
        self.expanded = True
        return await self._load()

    def collapse(self) -> None:
        """Close the node; an in-flight load for it will be discarded."""
        self.expanded = False
        self.generation += 1
        self.loading = False
        logger.debug(f"Collapsed node {self.key}, generation={self.generation}")
        self._emit()

    async def toggle(self) -> bool:
        """Expand a closed node or collapse an open one. Returns the new expanded state."""
        if self.expanded:
            self.collapse()
        else:
            await self.expand()
        return self.expanded

    def toggle_details(self) -> bool:
        self.show_details = not self.show_details
        self._emit()
        return self.show_details

    async def refresh(self) -> bool:
        """
        Refetch the children of an open node.

        A closed node only forgets its children so the next expand fetches
        fresh data.

        Returns:
            True if a fresh set of children was applied
        """
        if not self.expanded:
            self.loaded = False
            return False
        return await self._load()

    async def notify_changed(self) -> None:
        """
        Propagate a structural change made under this node.

        Reloads this node's children and its parent's list (which holds this
        node's own record, badge included). Further ancestors are asked to
        re-derive their view without refetching.
        """
        loads = [self.refresh()]
        if self.parent is not None:
            loads.append(self.parent.refresh())
        await asyncio.gather(*loads)

        for ancestor in self.ancestors()[1:]:
            ancestor.rederive()

    # ==============================================================================
    # LOADING
    # ==============================================================================

    async def _fetch(self) -> Sequence[T]:
        attempts = self.settings.fetch_retries + 1
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(self.loader(self.item), timeout=self.settings.fetch_timeout)
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    f"Child fetch for node {self.key} failed (attempt {attempt}/{attempts}): {e!r}"
                )
                if attempt < attempts and self.retry_delay:
                    await asyncio.sleep(self.retry_delay)
        raise ChildLoadError(self.key, attempts, last_error)

    async def _load(self) -> bool:
        self.generation += 1
        generation = self.generation
        self.loading = True
        self.error = None
        self._emit()

        try:
            items = await self._fetch()
        except Exception as e:
            if generation != self.generation:
                logger.debug(f"Discarding failed load of node {self.key}: generation moved on")
                return False
            self.loading = False
            self.error = e
            logger.error(f"Could not load children of node {self.key}: {e}")
            self._emit()
            return False

        if generation != self.generation or not self.expanded:
            logger.debug(
                f"Discarding stale children of node {self.key}: "
                f"generation {generation} != {self.generation} or collapsed"
            )
            return False

        self._reconcile(items)
        self.loading = False
        self.loaded = True
        self._emit()
        return True

    def _reconcile(self, items: Sequence[T]) -> None:
        """Replace children with nodes for items, reusing nodes whose key survived."""
        existing: Dict[Hashable, "ExpandableNode[T]"] = {child.key: child for child in self.children}
        children: List["ExpandableNode[T]"] = []
        for item in items:
            node = existing.pop(self.key_func(item), None)
            if node is None:
                node = ExpandableNode(
                    item,
                    self.loader,
                    self.key_func,
                    parent=self,
                    settings=self.settings,
                    retry_delay=self.retry_delay,
                )
            else:
                node.item = item
            children.append(node)

        for gone in existing.values():
            if gone.expanded:
                gone.collapse()
            gone.parent = None

        self.children = children
