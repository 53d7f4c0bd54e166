"""Identifier side table and re-entrancy guard."""

from typing import Any, Callable, Optional

from ..errors import AlreadySerializedError


class IdTable:
    """External map from live node identity to recording id.

    Ids are allocated from one counter per recording session and are never
    reused, even after the node that held one is retired. Nodes are keyed by
    identity, so the table works with nodes that compare by value or cannot
    carry extra attributes.
    """

    def __init__(self, first_id: int = 1):
        self._next_id = first_id
        self._entries: dict[int, tuple[Any, int]] = {}

    @property
    def next_id(self) -> int:
        return self._next_id

    def allocate(self) -> int:
        """Allocate an id that belongs to no live node."""
        node_id = self._next_id
        self._next_id += 1
        return node_id

    def assign(self, node: Any) -> int:
        """Assign a fresh id to `node`.

        Raises:
            AlreadySerializedError: The node is already tracked.
        """
        existing = self.get(node)
        if existing is not None:
            raise AlreadySerializedError(existing)
        node_id = self.allocate()
        self._entries[id(node)] = (node, node_id)
        return node_id

    def get(self, node: Any) -> Optional[int]:
        if node is None:
            return None
        entry = self._entries.get(id(node))
        return entry[1] if entry is not None else None

    def retire(self, node: Any) -> Optional[int]:
        """Forget `node`; its id is never handed out again."""
        entry = self._entries.pop(id(node), None)
        return entry[1] if entry is not None else None

    def __contains__(self, node: Any) -> bool:
        return id(node) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ReentrantGuard:
    """Depth counter for re-entrant callbacks.

    Contract: `on_outermost_enter` fires when entering at depth 0, and
    `on_outermost_exit` fires when the outermost entry exits without an
    exception. Nested entries only change the depth. This is not a lock.

    Example:
        guard = ReentrantGuard(on_outermost_exit=reset_baseline)
        with guard:
            process()  # may re-enter `with guard:` synchronously
    """

    def __init__(
        self,
        on_outermost_enter: Optional[Callable[[], None]] = None,
        on_outermost_exit: Optional[Callable[[], None]] = None,
    ):
        self._on_outermost_enter = on_outermost_enter
        self._on_outermost_exit = on_outermost_exit
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def active(self) -> bool:
        return self._depth > 0

    def __enter__(self) -> "ReentrantGuard":
        if self._depth == 0 and self._on_outermost_enter is not None:
            self._on_outermost_enter()
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._depth -= 1
        if self._depth == 0 and exc_type is None and self._on_outermost_exit is not None:
            self._on_outermost_exit()
        return False
