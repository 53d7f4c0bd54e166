"""Action codec.

Every recordable event is one dataclass per tag in the closed `ActionKind`
enumeration. On the wire an action is a one-key object mapping the tag to
its payload, e.g. ``{"t": [3, "bye"]}``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from ..errors import MalformedActionError, UnknownActionError
from .snapshot import ElementNode, SerializedNode, decode_node

SCROLL_BOTTOM = "bottom"
CANVAS_DID_DRAW = "didDraw"


class ActionKind(str, Enum):
    """Wire tags, one character each."""

    ADD = "a"
    CANVAS_DATA = "c"
    DELAY = "d"
    FRAME = "e"
    STYLE_FLUSH = "f"
    INPUT = "i"
    LABEL = "l"
    MOUSE_MOVE = "m"
    MOUSE_DOWN = "n"
    ATTR = "r"
    SCROLL = "s"
    TEXT = "t"
    MOUSE_UP = "u"
    REMOVE = "v"


class Action(ABC):
    """Base class for all actions."""

    kind: ClassVar[ActionKind]

    @abstractmethod
    def payload(self) -> Any:
        """Wire payload for this action."""

    @classmethod
    @abstractmethod
    def from_payload(cls, payload: Any) -> "Action":
        """Build the action from its wire payload."""

    def to_wire(self) -> dict:
        return {self.kind.value: self.payload()}


def _fields(payload: Any, minimum: int, maximum: Optional[int] = None) -> list:
    maximum = maximum or minimum
    if not isinstance(payload, list) or not minimum <= len(payload) <= maximum:
        raise MalformedActionError(f"Bad action payload: {payload!r}")
    return payload


# =============================================================================
# Structural
# =============================================================================


@dataclass
class Add(Action):
    """Insert a new subtree before `next_sibling_id` (append when None)."""

    kind: ClassVar[ActionKind] = ActionKind.ADD

    parent_id: int
    next_sibling_id: Optional[int]
    node: SerializedNode
    actions: list[Action] = field(default_factory=list)

    def payload(self) -> list:
        return [
            self.parent_id,
            self.next_sibling_id,
            self.node.to_wire(),
            [action.to_wire() for action in self.actions],
        ]

    @classmethod
    def from_payload(cls, payload: Any) -> "Add":
        parent_id, next_sibling_id, node, actions = _fields(payload, 4)
        return cls(parent_id, next_sibling_id, decode_node(node), decode_actions(actions))


@dataclass
class Remove(Action):
    """Detach a node; its descendants are retired with it."""

    kind: ClassVar[ActionKind] = ActionKind.REMOVE

    node_id: int

    def payload(self) -> int:
        return self.node_id

    @classmethod
    def from_payload(cls, payload: Any) -> "Remove":
        return cls(payload)


@dataclass
class Attr(Action):
    """Set an attribute, or remove it when `value` is None."""

    kind: ClassVar[ActionKind] = ActionKind.ATTR

    node_id: int
    name: str
    value: Optional[str]

    def payload(self) -> list:
        return [self.node_id, self.name, self.value]

    @classmethod
    def from_payload(cls, payload: Any) -> "Attr":
        return cls(*_fields(payload, 3))


@dataclass
class Text(Action):
    """Replace character data."""

    kind: ClassVar[ActionKind] = ActionKind.TEXT

    node_id: int
    data: str

    def payload(self) -> list:
        return [self.node_id, self.data]

    @classmethod
    def from_payload(cls, payload: Any) -> "Text":
        return cls(*_fields(payload, 2))


@dataclass
class Frame(Action):
    """A nested document is ready; `body` is its snapshot."""

    kind: ClassVar[ActionKind] = ActionKind.FRAME

    node_id: int
    body: ElementNode

    def payload(self) -> list:
        return [self.node_id, self.body.to_wire()]

    @classmethod
    def from_payload(cls, payload: Any) -> "Frame":
        node_id, body = _fields(payload, 2)
        return cls(node_id, decode_node(body))


# =============================================================================
# Controls, canvas and scrolling
# =============================================================================


@dataclass
class Input(Action):
    """Set a control's value."""

    kind: ClassVar[ActionKind] = ActionKind.INPUT

    node_id: int
    value: Optional[str]

    def payload(self) -> list:
        return [self.node_id, self.value]

    @classmethod
    def from_payload(cls, payload: Any) -> "Input":
        return cls(*_fields(payload, 2))


@dataclass
class CanvasData(Action):
    """Canvas pixels as a data URL."""

    kind: ClassVar[ActionKind] = ActionKind.CANVAS_DATA

    node_id: int
    data_url: str
    reason: Optional[str] = None

    def payload(self) -> list:
        if self.reason is None:
            return [self.node_id, self.data_url]
        return [self.node_id, self.data_url, self.reason]

    @classmethod
    def from_payload(cls, payload: Any) -> "CanvasData":
        return cls(*_fields(payload, 2, 3))


@dataclass
class Scroll(Action):
    """Scroll a container to the bottom or to show a tracked descendant.

    A target payload without a third element centres the target; a third
    element (even null) aligns the target's top to `offset` pixels below
    the container's top.
    """

    kind: ClassVar[ActionKind] = ActionKind.SCROLL

    node_id: int
    target: Union[int, str]
    offset: Optional[float] = None
    centered: bool = False

    @property
    def to_bottom(self) -> bool:
        return self.target == SCROLL_BOTTOM

    def payload(self) -> list:
        if self.to_bottom or self.centered:
            return [self.node_id, self.target]
        return [self.node_id, self.target, self.offset]

    @classmethod
    def from_payload(cls, payload: Any) -> "Scroll":
        fields = _fields(payload, 2, 3)
        if len(fields) == 2:
            node_id, target = fields
            return cls(node_id, target, centered=target != SCROLL_BOTTOM)
        return cls(*fields)


@dataclass
class StyleFlush(Action):
    """Force a layout recalculation on replay."""

    kind: ClassVar[ActionKind] = ActionKind.STYLE_FLUSH

    node_id: int

    def payload(self) -> int:
        return self.node_id

    @classmethod
    def from_payload(cls, payload: Any) -> "StyleFlush":
        return cls(payload)


# =============================================================================
# Pointer
# =============================================================================


@dataclass
class PointerAction(Action):
    """Pointer position in root-relative integer pixels."""

    x: int
    y: int

    def payload(self) -> list:
        return [self.x, self.y]

    @classmethod
    def from_payload(cls, payload: Any) -> "PointerAction":
        return cls(*_fields(payload, 2))


@dataclass
class MouseMove(PointerAction):
    kind: ClassVar[ActionKind] = ActionKind.MOUSE_MOVE


@dataclass
class MouseDown(PointerAction):
    kind: ClassVar[ActionKind] = ActionKind.MOUSE_DOWN


@dataclass
class MouseUp(PointerAction):
    kind: ClassVar[ActionKind] = ActionKind.MOUSE_UP


# =============================================================================
# Timeline
# =============================================================================


@dataclass
class Delay(Action):
    """Elapsed real time, in milliseconds."""

    kind: ClassVar[ActionKind] = ActionKind.DELAY

    milliseconds: int

    def __post_init__(self):
        if self.milliseconds < 0:
            raise ValueError(f"Negative delay: {self.milliseconds}")

    def payload(self) -> int:
        return self.milliseconds

    @classmethod
    def from_payload(cls, payload: Any) -> "Delay":
        return cls(payload)


@dataclass
class Label(Action):
    """Named seek checkpoint."""

    kind: ClassVar[ActionKind] = ActionKind.LABEL

    name: str

    def payload(self) -> str:
        return self.name

    @classmethod
    def from_payload(cls, payload: Any) -> "Label":
        return cls(payload)


ACTION_TYPES: dict[ActionKind, type[Action]] = {
    action_type.kind: action_type
    for action_type in (
        Add, Remove, Attr, Text, Frame, Input, CanvasData, Scroll, StyleFlush,
        MouseMove, MouseDown, MouseUp, Delay, Label,
    )
}

if set(ACTION_TYPES) != set(ActionKind):
    raise RuntimeError(f"Action kinds without a type: {set(ActionKind) - set(ACTION_TYPES)}")


def encode_action(action: Action) -> dict:
    """Encode an action to its wire form."""
    return action.to_wire()


def encode_actions(actions: list[Action]) -> list[dict]:
    return [action.to_wire() for action in actions]


def decode_action(obj: dict) -> Action:
    """Decode one wire action.

    Raises:
        UnknownActionError: The tag is not in `ActionKind`.
        MalformedActionError: The object or payload has the wrong shape.
    """
    if not isinstance(obj, dict) or len(obj) != 1:
        raise MalformedActionError(f"Bad action: {obj!r}")

    (tag, payload), = obj.items()
    try:
        kind = ActionKind(tag)
    except ValueError:
        raise UnknownActionError(f"Unknown action {tag!r}") from None

    try:
        return ACTION_TYPES[kind].from_payload(payload)
    except (TypeError, ValueError) as e:
        if isinstance(e, MalformedActionError):
            raise
        raise MalformedActionError(f"Bad {kind.name} payload {payload!r}: {e}") from e


def decode_actions(objs: list[dict]) -> list[Action]:
    if not isinstance(objs, list):
        raise MalformedActionError(f"Bad action list: {objs!r}")
    return [decode_action(obj) for obj in objs]
