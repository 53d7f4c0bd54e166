"""Live tree abstractions and the in-memory implementation."""

from .base import (
    AttributeHolder,
    CharacterDataHolder,
    MutationSource,
    NodeType,
    Rect,
    TreeNode,
)
from .memory import (
    CanvasElement,
    ControlElement,
    Document,
    Element,
    Event,
    IFrameElement,
    MutationObserver,
    MutationRecord,
    Window,
)

__all__ = [
    # Interfaces
    "NodeType",
    "Rect",
    "TreeNode",
    "AttributeHolder",
    "CharacterDataHolder",
    "MutationSource",
    # In-memory tree
    "Document",
    "Element",
    "ControlElement",
    "CanvasElement",
    "IFrameElement",
    "Event",
    "Window",
    "MutationObserver",
    "MutationRecord",
]
