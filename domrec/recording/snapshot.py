"""Snapshot node format.

Element: ``{"id": N, "": TAG, "a": {...}, "c": [...]}`` (attributes and
children omitted when empty). Text: ``{"id": N, "d": "..."}`` (data omitted
when empty).
"""

from dataclasses import dataclass
from typing import Optional, Union

from ..errors import MalformedActionError

TAG_KEY = ""
ATTRIBUTES_KEY = "a"
CHILDREN_KEY = "c"
DATA_KEY = "d"


@dataclass
class TextNode:
    """Serialized text (or CDATA) node."""

    id: int
    data: Optional[str] = None

    def to_wire(self) -> dict:
        obj = {"id": self.id}
        if self.data:
            obj[DATA_KEY] = self.data
        return obj


@dataclass
class ElementNode:
    """Serialized element with its retained attributes and children."""

    id: int
    tag: str
    attributes: Optional[dict[str, str]] = None
    children: Optional[list["SerializedNode"]] = None

    def append_child(self, node: "SerializedNode") -> None:
        if self.children is None:
            self.children = []
        self.children.append(node)

    def to_wire(self) -> dict:
        obj = {"id": self.id, TAG_KEY: self.tag}
        if self.attributes:
            obj[ATTRIBUTES_KEY] = dict(self.attributes)
        if self.children:
            obj[CHILDREN_KEY] = [child.to_wire() for child in self.children]
        return obj

    def iter_ids(self):
        """Yield every id in this subtree, pre-order."""
        yield self.id
        for child in self.children or []:
            if isinstance(child, ElementNode):
                yield from child.iter_ids()
            else:
                yield child.id


SerializedNode = Union[ElementNode, TextNode]


def decode_node(obj: dict) -> SerializedNode:
    """Decode a wire snapshot node."""
    if not isinstance(obj, dict) or "id" not in obj:
        raise MalformedActionError(f"Bad snapshot node: {obj!r}")

    if TAG_KEY in obj:
        children = obj.get(CHILDREN_KEY)
        return ElementNode(
            id=obj["id"],
            tag=obj[TAG_KEY],
            attributes=dict(obj[ATTRIBUTES_KEY]) if ATTRIBUTES_KEY in obj else None,
            children=[decode_node(child) for child in children] if children else None,
        )

    return TextNode(id=obj["id"], data=obj.get(DATA_KEY))
