"""Capability interfaces for the live tree.

The recorder and the player only rely on the abstractions defined here.
`domrec.dom.memory` implements them for hosts and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional


class NodeType(IntEnum):
    """Node kinds, numbered like the DOM's nodeType."""

    ELEMENT = 1
    TEXT = 3
    CDATA_SECTION = 4
    PROCESSING_INSTRUCTION = 7
    COMMENT = 8
    DOCUMENT = 9


@dataclass(frozen=True)
class Rect:
    """Bounding rectangle in viewport pixels."""

    left: float = 0
    top: float = 0
    width: float = 0
    height: float = 0

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


class TreeNode(ABC):
    """Anything with a position in the tree and (possibly) children."""

    node_type: NodeType

    @property
    @abstractmethod
    def parent_node(self) -> Optional["TreeNode"]:
        """Parent node, or None when detached or at the top."""

    @property
    @abstractmethod
    def child_nodes(self) -> list["TreeNode"]:
        """Ordered children (a snapshot; mutating it does not touch the tree)."""

    @property
    @abstractmethod
    def next_sibling(self) -> Optional["TreeNode"]:
        """Following sibling, or None."""

    @abstractmethod
    def contains(self, other: Optional["TreeNode"]) -> bool:
        """True when `other` is this node or one of its descendants."""


class AttributeHolder(ABC):
    """Element-like node with a tag and named string attributes."""

    @property
    @abstractmethod
    def tag_name(self) -> str:
        """Upper-case tag name."""

    @abstractmethod
    def attribute_items(self) -> list[tuple[str, str]]:
        """Attributes in document order."""

    @abstractmethod
    def get_attribute(self, name: str) -> Optional[str]:
        """Attribute value, or None when absent."""

    @abstractmethod
    def set_attribute(self, name: str, value: str) -> None:
        """Set an attribute."""

    @abstractmethod
    def remove_attribute(self, name: str) -> None:
        """Remove an attribute if present."""

    @abstractmethod
    def has_attribute(self, name: str) -> bool:
        """True when the attribute is present."""


class CharacterDataHolder(ABC):
    """Text-like node carrying character data."""

    @property
    @abstractmethod
    def data(self) -> str:
        """Current character data."""


class MutationSource(ABC):
    """Something that can hand out subtree mutation subscriptions."""

    @abstractmethod
    def create_mutation_observer(self, callback: Callable[[list, Any], None]) -> Any:
        """Create an observer that delivers batches of records to `callback`."""
