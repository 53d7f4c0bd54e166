"""Replay chrome drawn over the reconstructed tree: mouse cursor and fake caret."""

from typing import Any, Optional

CURSOR_CLASS = "mouseCursor"
CURSOR_DOWN_CLASS = "down"
CARET_CLASS = "fakeCaret"

CURSOR_VIEWBOX = "0 0 320 512"
CURSOR_PATH = (
    "M302.189 329.126H196.105l55.831 135.993c3.889 9.428-.555 19.999-9.444 23.999l-49.165 "
    "21.427c-9.165 4-19.443-.571-23.332-9.714l-53.053-129.136-86.664 89.138C18.729 472.71 "
    "0 463.554 0 447.977V18.299C0 1.899 19.921-6.096 30.277 5.443l284.412 292.542c11.472 "
    "11.179 3.007 31.141-12.5 31.141z"
)

EDITABLE_TAGS = frozenset({"INPUT", "TEXTAREA"})


def _px(value: float) -> str:
    return f"{value:g}px"


class CursorOverlay:
    """Arrow cursor that follows replayed pointer actions."""

    def __init__(self, document: Any):
        self.element = document.create_element("DIV")
        self.element.set_attribute("class", CURSOR_CLASS)
        svg = document.create_element("svg")
        svg.set_attribute("viewBox", CURSOR_VIEWBOX)
        path = document.create_element("path")
        path.set_attribute("d", CURSOR_PATH)
        svg.append_child(path)
        self.element.append_child(svg)

    @property
    def attached(self) -> bool:
        return self.element.parent_node is not None

    @property
    def pressed(self) -> bool:
        return self.element.class_list.contains(CURSOR_DOWN_CLASS)

    def move(self, container: Any, x: float, y: float) -> None:
        """Position the cursor at (x, y) relative to `container`."""
        self.element.style["left"] = _px(x)
        self.element.style["top"] = _px(y)
        if self.element.parent_node is not container:
            container.append_child(self.element)

    def press(self) -> None:
        self.element.class_list.add(CURSOR_DOWN_CLASS)

    def release(self) -> None:
        self.element.class_list.remove(CURSOR_DOWN_CLASS)


class CaretOverlay:
    """Fake text caret shown in the element carrying the focus marker.

    The caret sits after the element's text, estimated from a fixed glyph
    width and clamped to the element's box.
    """

    def __init__(self, document: Any, char_width: float):
        self.document = document
        self.char_width = char_width
        self.element: Optional[Any] = None

    def clear(self) -> None:
        if self.element is not None:
            self.element.remove()
            self.element = None

    def place(self, target: Any) -> bool:
        """Show the caret at the end of `target`'s text.

        Returns:
            False when `target` is not editable
        """
        self.clear()
        if target.tag_name not in EDITABLE_TAGS and not target.has_attribute("contenteditable"):
            return False

        value = getattr(target, "value", None)
        if value is None:
            value = target.text_content
        text_width = len(value) * self.char_width
        if target.offset_width:
            text_width = min(text_width, target.offset_width)

        caret = self.document.create_element("DIV")
        caret.set_attribute("class", CARET_CLASS)
        caret.style["left"] = _px(target.offset_left + text_width)
        caret.style["top"] = _px(target.offset_top)
        caret.style["height"] = _px(target.offset_height)

        container = target.offset_parent or target.parent_element
        if container is None:
            return False
        container.append_child(caret)
        self.element = caret
        return True
