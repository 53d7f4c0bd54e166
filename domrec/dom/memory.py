"""In-memory live tree.

A small DOM-shaped platform that implements the capability interfaces in
`domrec.dom.base`. It is the tree hosts record from and replay into, and the
fake tree the test suite drives.

Mutations are queued as `MutationRecord`s on every observer whose subtree
contains the changed node, and are delivered in one batch per observer when
the owning document's `flush_mutations()` runs (the end of a host task).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .base import (
    AttributeHolder,
    CharacterDataHolder,
    MutationSource,
    NodeType,
    Rect,
    TreeNode,
)


# =============================================================================
# Events
# =============================================================================


@dataclass
class Event:
    """A dispatched event."""

    type: str
    target: Any = None
    client_x: float = 0
    client_y: float = 0
    bubbles: bool = False
    detail: Any = None


class EventTarget:
    """Listener bookkeeping shared by nodes and windows."""

    def __init__(self):
        self._listeners: dict[tuple[str, bool], list[Callable]] = {}

    def add_event_listener(self, type_: str, listener: Callable, capture: bool = False) -> None:
        listeners = self._listeners.setdefault((type_, capture), [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, type_: str, listener: Callable, capture: bool = False) -> None:
        listeners = self._listeners.get((type_, capture), [])
        if listener in listeners:
            listeners.remove(listener)

    def has_event_listener(self, type_: str, listener: Callable, capture: bool = False) -> bool:
        return listener in self._listeners.get((type_, capture), [])

    def _invoke(self, event: Event, capture: bool) -> None:
        for listener in list(self._listeners.get((event.type, capture), [])):
            listener(event)


class Window(EventTarget):
    """Top-level event target of a document."""

    def __init__(self, document: "Document", inner_width: float = 0, inner_height: float = 0):
        super().__init__()
        self.document = document
        self.frame_element: Optional["IFrameElement"] = None
        self.inner_width = inner_width
        self.inner_height = inner_height


# =============================================================================
# Mutation observation
# =============================================================================


@dataclass
class MutationRecord:
    """One observed change."""

    type: str  # "childList", "attributes", "characterData"
    target: Any
    added_nodes: list = field(default_factory=list)
    removed_nodes: list = field(default_factory=list)
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None


@dataclass
class _ObserveOptions:
    attributes: bool = False
    character_data: bool = False
    child_list: bool = False
    subtree: bool = False

    def wants(self, record_type: str) -> bool:
        if record_type == "attributes":
            return self.attributes
        if record_type == "characterData":
            return self.character_data
        return self.child_list


class MutationObserver:
    """Subtree change subscription with batched delivery."""

    def __init__(self, callback: Callable[[list[MutationRecord], "MutationObserver"], None]):
        self.callback = callback
        self._registrations: list[tuple["Node", _ObserveOptions]] = []
        self._documents: list["Document"] = []
        self._records: list[MutationRecord] = []

    def observe(
        self,
        node: "Node",
        attributes: bool = False,
        character_data: bool = False,
        child_list: bool = False,
        subtree: bool = False,
    ) -> None:
        options = _ObserveOptions(attributes, character_data, child_list, subtree)
        self._registrations.append((node, options))
        document = node.document
        if document not in self._documents:
            self._documents.append(document)
            document._observers.append(self)

    def take_records(self) -> list[MutationRecord]:
        records = self._records
        self._records = []
        return records

    def disconnect(self) -> None:
        for document in self._documents:
            if self in document._observers:
                document._observers.remove(self)
        self._documents = []
        self._registrations = []
        self._records = []

    @property
    def has_pending(self) -> bool:
        return bool(self._records)

    def _consider(self, record: MutationRecord) -> None:
        for node, options in self._registrations:
            if not options.wants(record.type):
                continue
            if node is record.target or (options.subtree and node.contains(record.target)):
                self._records.append(record)
                return


# =============================================================================
# Nodes
# =============================================================================


class Node(EventTarget, TreeNode):
    """Base tree node. Identity is object identity."""

    node_type: NodeType

    def __init__(self, owner_document: Optional["Document"]):
        super().__init__()
        self.owner_document = owner_document
        self._parent: Optional[Node] = None
        self._children: list[Node] = []

    @property
    def document(self) -> "Document":
        return self.owner_document

    # Tree navigation

    @property
    def parent_node(self) -> Optional["Node"]:
        return self._parent

    @property
    def parent_element(self) -> Optional["Element"]:
        return self._parent if isinstance(self._parent, Element) else None

    @property
    def child_nodes(self) -> list["Node"]:
        return list(self._children)

    @property
    def first_child(self) -> Optional["Node"]:
        return self._children[0] if self._children else None

    @property
    def last_child(self) -> Optional["Node"]:
        return self._children[-1] if self._children else None

    @property
    def next_sibling(self) -> Optional["Node"]:
        if self._parent is None:
            return None
        siblings = self._parent._children
        index = siblings.index(self) + 1
        return siblings[index] if index < len(siblings) else None

    @property
    def previous_sibling(self) -> Optional["Node"]:
        if self._parent is None:
            return None
        siblings = self._parent._children
        index = siblings.index(self)
        return siblings[index - 1] if index > 0 else None

    @property
    def is_connected(self) -> bool:
        node = self
        while node._parent is not None:
            node = node._parent
        return isinstance(node, Document)

    def contains(self, other: Optional["Node"]) -> bool:
        while other is not None:
            if other is self:
                return True
            other = other._parent
        return False

    # Tree mutation

    def insert_before(self, node: "Node", reference: Optional["Node"]) -> "Node":
        if reference is not None and reference._parent is not self:
            raise ValueError("Reference node is not a child of this node")
        if node.contains(self):
            raise ValueError("Cannot insert a node into its own subtree")
        if node._parent is not None:
            node._parent.remove_child(node)
        index = len(self._children) if reference is None else self._children.index(reference)
        self._children.insert(index, node)
        node._parent = self
        self._notify(MutationRecord("childList", self, added_nodes=[node]))
        return node

    def append_child(self, node: "Node") -> "Node":
        return self.insert_before(node, None)

    def remove_child(self, node: "Node") -> "Node":
        if node._parent is not self:
            raise ValueError("Node is not a child of this node")
        self._children.remove(node)
        node._parent = None
        self._notify(MutationRecord("childList", self, removed_nodes=[node]))
        return node

    def remove(self) -> None:
        if self._parent is not None:
            self._parent.remove_child(self)

    @property
    def text_content(self) -> str:
        return "".join(child.text_content for child in self._children
                       if child.node_type in (NodeType.ELEMENT, NodeType.TEXT, NodeType.CDATA_SECTION))

    @text_content.setter
    def text_content(self, value: str) -> None:
        removed = self._children
        for child in removed:
            child._parent = None
        self._children = []
        added = []
        if value:
            text = self.document.create_text_node(value)
            text._parent = self
            self._children.append(text)
            added.append(text)
        if removed or added:
            self._notify(MutationRecord("childList", self, added_nodes=added, removed_nodes=list(removed)))

    # Events

    def dispatch_event(self, event: Event) -> Event:
        event.target = self
        window = self.document.window if self.document is not None else None
        if window is not None:
            window._invoke(event, capture=True)
        self._invoke(event, capture=True)
        self._invoke(event, capture=False)
        if event.bubbles:
            ancestor = self._parent
            while ancestor is not None:
                ancestor._invoke(event, capture=False)
                ancestor = ancestor._parent
            if window is not None:
                window._invoke(event, capture=False)
        return event

    def _notify(self, record: MutationRecord) -> None:
        document = self.document
        if document is None:
            return
        for observer in list(document._observers):
            observer._consider(record)


class CharacterData(Node, CharacterDataHolder):
    """Node carrying character data."""

    def __init__(self, owner_document: "Document", data: str = ""):
        super().__init__(owner_document)
        self._data = data

    @property
    def data(self) -> str:
        return self._data

    @data.setter
    def data(self, value: str) -> None:
        old_value = self._data
        self._data = value
        self._notify(MutationRecord("characterData", self, old_value=old_value))

    @property
    def text_content(self) -> str:
        return self._data

    @text_content.setter
    def text_content(self, value: str) -> None:
        self.data = value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._data!r}>"


class Text(CharacterData):
    node_type = NodeType.TEXT


class CDATASection(CharacterData):
    node_type = NodeType.CDATA_SECTION


class Comment(CharacterData):
    node_type = NodeType.COMMENT


class ProcessingInstruction(CharacterData):
    node_type = NodeType.PROCESSING_INSTRUCTION

    def __init__(self, owner_document: "Document", target: str, data: str = ""):
        super().__init__(owner_document, data)
        self.target = target


class ClassList:
    """View over an element's class attribute."""

    def __init__(self, element: "Element"):
        self._element = element

    def _tokens(self) -> list[str]:
        return (self._element.get_attribute("class") or "").split()

    def contains(self, token: str) -> bool:
        return token in self._tokens()

    def add(self, token: str) -> None:
        tokens = self._tokens()
        if token not in tokens:
            self._element.set_attribute("class", " ".join(tokens + [token]))

    def remove(self, token: str) -> None:
        tokens = self._tokens()
        if token in tokens:
            self._element.set_attribute("class", " ".join(t for t in tokens if t != token))

    def toggle(self, token: str) -> bool:
        if self.contains(token):
            self.remove(token)
            return False
        self.add(token)
        return True

    def __iter__(self):
        return iter(self._tokens())


class Element(Node, AttributeHolder):
    """Element with attributes, scroll state and host-assigned layout."""

    node_type = NodeType.ELEMENT

    def __init__(self, owner_document: "Document", tag_name: str):
        super().__init__(owner_document)
        self._tag_name = tag_name.upper()
        self._attributes: dict[str, str] = {}
        self.style: dict[str, str] = {}

        # Scroll state, plus the app-maintained record of what was scrolled into view
        self._scroll_left: float = 0
        self._scroll_top: float = 0
        self.scrolled_into_view: Any = None  # tracked node or "bottom"
        self.scrolled_into_view_offset: Optional[float] = None

        # Layout, assigned by the host
        self.bounding_rect = Rect()
        self.offset_left: float = 0
        self.offset_top: float = 0
        self.offset_width: float = 0
        self.offset_height: float = 0
        self.client_height: float = 0
        self.scroll_height: float = 0
        self._offset_parent: Optional[Element] = None

    @property
    def tag_name(self) -> str:
        return self._tag_name

    # Attributes

    def attribute_items(self) -> list[tuple[str, str]]:
        return list(self._attributes.items())

    @property
    def attributes(self) -> dict[str, str]:
        return dict(self._attributes)

    def get_attribute(self, name: str) -> Optional[str]:
        return self._attributes.get(name.lower())

    def set_attribute(self, name: str, value: str) -> None:
        name = name.lower()
        old_value = self._attributes.get(name)
        self._attributes[name] = str(value)
        self._notify(MutationRecord("attributes", self, attribute_name=name, old_value=old_value))

    def remove_attribute(self, name: str) -> None:
        name = name.lower()
        if name not in self._attributes:
            return
        old_value = self._attributes.pop(name)
        self._notify(MutationRecord("attributes", self, attribute_name=name, old_value=old_value))

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self._attributes

    @property
    def id(self) -> str:
        return self._attributes.get("id", "")

    @property
    def class_list(self) -> ClassList:
        return ClassList(self)

    # Scrolling

    def _max_scroll_top(self) -> float:
        return max(0, self.scroll_height - self.client_height)

    @property
    def scroll_top(self) -> float:
        return self._scroll_top

    @scroll_top.setter
    def scroll_top(self, value: float) -> None:
        self._scroll_top = min(max(0, value), self._max_scroll_top())

    @property
    def scroll_left(self) -> float:
        return self._scroll_left

    @scroll_left.setter
    def scroll_left(self, value: float) -> None:
        self._scroll_left = max(0, value)

    def scroll_to(self, x: float, y: float) -> None:
        """Scroll and fire a `scroll` event at this element."""
        self.scroll_left = x
        self.scroll_top = y
        self.dispatch_event(Event("scroll"))

    # Layout

    def get_bounding_client_rect(self) -> Rect:
        return self.bounding_rect

    def get_client_rects(self) -> list[Rect]:
        if not self.is_connected or self.style.get("display") == "none":
            return []
        return [self.bounding_rect]

    @property
    def offset_parent(self) -> Optional["Element"]:
        if self._offset_parent is not None:
            return self._offset_parent
        return self.parent_element

    @offset_parent.setter
    def offset_parent(self, element: Optional["Element"]) -> None:
        self._offset_parent = element

    def __repr__(self) -> str:
        return f"<{self._tag_name} {self._attributes!r}>"


class ControlElement(Element):
    """INPUT, TEXTAREA and SELECT: elements with a live value."""

    def __init__(self, owner_document: "Document", tag_name: str):
        super().__init__(owner_document, tag_name)
        self.value = ""


class CanvasElement(Element):
    """Canvas whose pixels are only reachable as a data URL."""

    def __init__(self, owner_document: "Document", tag_name: str = "CANVAS"):
        super().__init__(owner_document, tag_name)
        self._data_url = "data:,"

    def to_data_url(self) -> str:
        return self._data_url

    def draw_image(self, data_url: str) -> None:
        self._data_url = data_url


class IFrameElement(Element):
    """Element hosting a nested document."""

    def __init__(self, owner_document: "Document", tag_name: str = "IFRAME"):
        super().__init__(owner_document, tag_name)
        self.content_document = Document(frame_element=self)

    @property
    def content_window(self) -> Window:
        return self.content_document.window

    def load_document(self, document: "Document") -> None:
        """Navigate to `document` and fire `load` at this element."""
        document.window.frame_element = self
        document.ready_state = "complete"
        self.content_document = document
        self.dispatch_event(Event("load"))


_ELEMENT_CLASSES = {
    "INPUT": ControlElement,
    "TEXTAREA": ControlElement,
    "SELECT": ControlElement,
    "CANVAS": CanvasElement,
    "IFRAME": IFrameElement,
}


class Document(Node, MutationSource):
    """Document with its own window, observers and focus."""

    node_type = NodeType.DOCUMENT

    def __init__(
        self,
        frame_element: Optional[IFrameElement] = None,
        ready_state: str = "complete",
        inner_width: float = 0,
        inner_height: float = 0,
    ):
        super().__init__(None)
        self.window = Window(self, inner_width, inner_height)
        self.window.frame_element = frame_element
        self.ready_state = ready_state
        self._observers: list[MutationObserver] = []
        self._active_element: Optional[Element] = None

        html = self.create_element("HTML")
        html.append_child(self.create_element("HEAD"))
        html.append_child(self.create_element("BODY"))
        self.append_child(html)

    @property
    def document(self) -> "Document":
        return self

    @property
    def document_element(self) -> Optional[Element]:
        for child in self._children:
            if isinstance(child, Element):
                return child
        return None

    def _find_in_root(self, tag_name: str) -> Optional[Element]:
        root = self.document_element
        if root is None:
            return None
        for child in root._children:
            if isinstance(child, Element) and child.tag_name == tag_name:
                return child
        return None

    @property
    def head(self) -> Optional[Element]:
        return self._find_in_root("HEAD")

    @property
    def body(self) -> Optional[Element]:
        return self._find_in_root("BODY")

    # Factories

    def create_element(self, tag_name: str) -> Element:
        tag_name = tag_name.upper()
        element_class = _ELEMENT_CLASSES.get(tag_name, Element)
        return element_class(self, tag_name)

    def create_text_node(self, data: str) -> Text:
        return Text(self, data)

    def create_cdata_section(self, data: str) -> CDATASection:
        return CDATASection(self, data)

    def create_comment(self, data: str) -> Comment:
        return Comment(self, data)

    def create_processing_instruction(self, target: str, data: str) -> ProcessingInstruction:
        return ProcessingInstruction(self, target, data)

    def create_mutation_observer(self, callback) -> MutationObserver:
        return MutationObserver(callback)

    # Focus

    @property
    def active_element(self) -> Optional[Element]:
        if self._active_element is not None and self.contains(self._active_element):
            return self._active_element
        return self.body

    def focus(self, element: Element) -> None:
        """Focus `element` and fire `focus` at it.

        Focusing inside a nested document makes the hosting frame element the
        active element of every enclosing document.
        """
        self._active_element = element
        frame = self.window.frame_element
        while frame is not None:
            frame.document._active_element = frame
            frame = frame.document.window.frame_element
        element.dispatch_event(Event("focus"))

    # Delivery

    def flush_mutations(self) -> None:
        """Deliver queued records to their observers until none remain."""
        while True:
            pending = [observer for observer in self._observers if observer.has_pending]
            if not pending:
                return
            for observer in pending:
                records = observer.take_records()
                if records:
                    observer.callback(records, observer)
