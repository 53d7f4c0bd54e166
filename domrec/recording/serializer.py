"""Tree serializer - convert a live subtree into the snapshot format.

Assigns ids in pre-order, attaches scroll listeners to scrollable nodes,
hands nested documents to the frame bridge, and pushes the bootstrap actions
a freshly deserialized subtree needs (control values, canvas pixels, initial
scroll) into the supplied sink.
"""

from typing import Any, Callable, Optional

import structlog

from ..dom.base import NodeType
from ..errors import AlreadySerializedError, UnknownScrollTargetError, UnsupportedNodeError
from .actions import Action, CanvasData, Input, Scroll, SCROLL_BOTTOM
from .ids import IdTable
from .models import RecorderConfig
from .snapshot import ElementNode, SerializedNode, TextNode

logger = structlog.get_logger()

EXCLUDED_TAGS = frozenset({"SCRIPT", "LINK"})
CONTROL_TAGS = frozenset({"INPUT", "TEXTAREA"})
SCROLLABLE_TAGS = frozenset({"DIV", "PRE"})
TEXT_NODE_TYPES = (NodeType.TEXT, NodeType.CDATA_SECTION)
IGNORED_NODE_TYPES = (NodeType.COMMENT, NodeType.PROCESSING_INSTRUCTION)


def default_attribute_filter(element: Any, name: str) -> bool:
    """Drop `title` everywhere and `src`/`srcdoc` on nested-document elements.

    Frame contents are captured structurally, so replay never loads a URL.
    """
    if name == "title":
        return False
    if name in ("src", "srcdoc") and element.tag_name == "IFRAME":
        return False
    return True


class TreeSerializer:
    """Serializes live nodes for one recording session.

    Example:
        bootstrap = []
        snapshot = serializer.serialize(root, bootstrap)
    """

    def __init__(
        self,
        ids: IdTable,
        config: RecorderConfig,
        frames: Any,
        attach_frame: Callable[[Any, list[Action]], None],
    ):
        """Initialize serializer.

        Args:
            ids: Session id table
            config: Recorder configuration
            frames: Frame registry, used to find the scope owning a node's document
            attach_frame: Called with (frame element, sink) for nested documents
        """
        self.ids = ids
        self.config = config
        self.frames = frames
        self._attach_frame = attach_frame
        self._attribute_filter = config.attribute_filter or default_attribute_filter
        self.log = logger.bind(component="serializer")

    def allow_attribute(self, element: Any, name: str) -> bool:
        return self._attribute_filter(element, name)

    def serialize(self, node: Any, sink: list[Action]) -> Optional[SerializedNode]:
        """Serialize `node` and its subtree.

        Returns:
            The snapshot node, or None when the node is excluded.

        Raises:
            AlreadySerializedError: The node already carries an id.
            UnsupportedNodeError: The node kind is not recordable.
        """
        existing = self.ids.get(node)
        if existing is not None:
            raise AlreadySerializedError(existing)

        node_type = node.node_type
        if node_type == NodeType.ELEMENT:
            return self._serialize_element(node, sink)
        if node_type in TEXT_NODE_TYPES:
            return TextNode(self.ids.assign(node), node.data or None)
        if node_type in IGNORED_NODE_TYPES:
            return None

        raise UnsupportedNodeError(f"Bad node {node!r}")

    def _is_skipped(self, element: Any) -> bool:
        return (
            element.class_list.contains("hidden")
            and element.id in self.config.skip_hidden_ids
        )

    def _serialize_element(self, element: Any, sink: list[Action]) -> Optional[ElementNode]:
        tag = element.tag_name
        if tag in EXCLUDED_TAGS:
            return None
        if tag in SCROLLABLE_TAGS and self._is_skipped(element):
            return None

        node_id = self.ids.assign(element)

        if tag in CONTROL_TAGS:
            sink.append(Input(node_id, getattr(element, "value", None)))
            self.watch_scroll(element)
        elif tag in SCROLLABLE_TAGS:
            self.watch_scroll(element)
        elif tag == "CANVAS":
            sink.append(CanvasData(node_id, element.to_data_url()))
        elif tag == "IFRAME":
            self._attach_frame(element, sink)

        attributes = {
            name: value
            for name, value in element.attribute_items()
            if self.allow_attribute(element, name)
        }

        children = []
        for child in element.child_nodes:
            serialized = self.serialize(child, sink)
            if serialized is not None:
                children.append(serialized)

        if element.scroll_left or element.scroll_top:
            action = self.scroll_action(node_id, element)
            if action is not None:
                sink.append(action)

        return ElementNode(node_id, tag, attributes or None, children or None)

    def watch_scroll(self, element: Any) -> None:
        scope = self.frames.scope_for_document(element.owner_document)
        if scope is not None:
            element.add_event_listener("scroll", scope.on_scroll)

    def unwatch_scroll(self, node: Any) -> None:
        scope = self.frames.scope_for_document(node.owner_document)
        if scope is not None:
            node.remove_event_listener("scroll", scope.on_scroll)

    def scroll_action(self, node_id: int, element: Any) -> Optional[Scroll]:
        """Encode the element's scroll position from its scrolled-into-view metadata.

        Returns None (after logging) when the app left no metadata.
        """
        target = getattr(element, "scrolled_into_view", None)
        if target is None:
            self.log.warning("Unknown scroll operation ignored", node_id=node_id)
            return None

        if isinstance(target, str):
            if target != SCROLL_BOTTOM:
                raise UnknownScrollTargetError(f"Unknown scrolledIntoView: {target}")
            return Scroll(node_id, SCROLL_BOTTOM)

        target_id = self.ids.get(target)
        if target_id is None:
            raise UnknownScrollTargetError(f"Unknown scrolledIntoView: {target!r}")
        return Scroll(node_id, target_id, getattr(element, "scrolled_into_view_offset", None))
