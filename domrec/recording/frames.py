"""Frame bridge - record nested documents inside the parent action stream.

Each recorded document (the root document and every bridged nested one) gets
a `FrameScope` that owns its mutation observer and window listeners. Scopes
are found through a `FrameRegistry` keyed by document and by frame element,
so live nodes never carry back-pointers to the recorder.
"""

import math
from typing import Any, Optional, TYPE_CHECKING

import structlog

from ..dom.base import NodeType
from ..errors import UnknownEventTypeError, UnsupportedNodeError
from .actions import (
    Action,
    CANVAS_DID_DRAW,
    CanvasData,
    Frame,
    Input,
    MouseDown,
    MouseMove,
    MouseUp,
    StyleFlush,
)
from .models import STYLESHEET_CACHE_ATTRIBUTE
from .snapshot import ElementNode, TextNode

if TYPE_CHECKING:
    from .recorder import Recorder

logger = structlog.get_logger()

POINTER_ACTIONS = {
    "mousemove": MouseMove,
    "mousedown": MouseDown,
    "mouseup": MouseUp,
}


def _round_px(value: float) -> int:
    """Round half up to integer pixels."""
    return int(math.floor(value + 0.5))


class FrameScope:
    """Recording scope for one document."""

    def __init__(self, recorder: "Recorder", root: Any, iframe_element: Any = None):
        self.recorder = recorder
        self.root = root
        self.document = root.owner_document
        self.window = self.document.window
        self.iframe_element = iframe_element
        self.initial_state: Optional[tuple[ElementNode, list[Action]]] = None
        self.observer = None

    def _window_listeners(self) -> list[tuple[str, Any]]:
        return [
            ("input", self.on_input),
            ("mousemove", self.on_mouse),
            ("mousedown", self.on_mouse),
            ("mouseup", self.on_mouse),
            ("forceStyleFlush", self.on_style_flush),
            ("didDrawCanvas", self.on_canvas_draw),
            ("focus", self.on_focus),
        ]

    def start(self) -> None:
        """Register, serialize the root, then start observing.

        Raises:
            UnsupportedNodeError: The root itself is excluded from recording.
        """
        self.recorder.frames.register(self)
        actions: list[Action] = []
        serialized = self.recorder.serializer.serialize(self.root, actions)
        if serialized is None:
            self.recorder.frames.unregister(self)
            raise UnsupportedNodeError(f"Can't record element {getattr(self.root, 'tag_name', self.root)!r}")
        self.initial_state = (serialized, actions)

        self.observer = self.document.create_mutation_observer(self.recorder.process_records)
        self.observer.observe(
            self.root,
            attributes=True,
            character_data=True,
            child_list=True,
            subtree=True,
        )
        for type_, listener in self._window_listeners():
            self.window.add_event_listener(type_, listener, capture=True)

    def stop(self) -> None:
        """Flush, disconnect, drop listeners and retire every id in the scope."""
        self.flush_observer()
        self.observer.disconnect()
        for type_, listener in self._window_listeners():
            self.window.remove_event_listener(type_, listener, capture=True)
        self.recorder.retire(self.root)
        self.recorder.frames.unregister(self)

    def flush_observer(self) -> None:
        self.recorder.process_records(self.observer.take_records())

    def _prep_event(self, event: Any) -> int:
        self.flush_observer()
        return self.recorder.ids.get(event.target) or 0

    # Listeners

    def on_mouse(self, event: Any) -> None:
        x = event.client_x
        y = event.client_y
        frame_element = self.iframe_element
        target = event.target
        event_root = self.root

        # Translate to root document coordinates
        while frame_element is not None:
            frame_rect = frame_element.get_bounding_client_rect()
            x += frame_rect.left
            y += frame_rect.top
            target = frame_element
            outer = self.recorder.frames.scope_for_document(frame_element.owner_document)
            if outer is None:
                return
            event_root = outer.root
            frame_element = outer.iframe_element

        if not event_root.contains(target):
            return

        self.flush_observer()
        root_rect = event_root.get_bounding_client_rect()
        x -= root_rect.left
        y -= root_rect.top

        action_type = POINTER_ACTIONS.get(event.type)
        if action_type is None:
            raise UnknownEventTypeError(f"Unknown event type: {event.type}")
        self.recorder.actions.append(action_type(_round_px(x), _round_px(y)))

    def on_scroll(self, event: Any) -> None:
        if not self.root.contains(event.target):
            return
        node_id = self._prep_event(event)
        if node_id:
            action = self.recorder.serializer.scroll_action(node_id, event.target)
            if action is not None:
                self.recorder.actions.append(action)

    def on_input(self, event: Any) -> None:
        if not self.root.contains(event.target):
            return
        node_id = self._prep_event(event)
        if node_id:
            # contenteditable regions have no value; their DOM changes are
            # recorded anyway and the action only moves the caret on replay
            self.recorder.actions.append(Input(node_id, getattr(event.target, "value", None)))

    def on_style_flush(self, event: Any) -> None:
        if not self.root.contains(event.target):
            return
        node_id = self._prep_event(event)
        if node_id:
            self.recorder.actions.append(StyleFlush(node_id))

    def on_canvas_draw(self, event: Any) -> None:
        if not self.root.contains(event.target):
            return
        node_id = self._prep_event(event)
        if node_id:
            self.recorder.actions.append(
                CanvasData(node_id, event.target.to_data_url(), CANVAS_DID_DRAW)
            )

    def on_focus(self, event: Any) -> None:
        self.recorder.evaluate_focus()


class FrameRegistry:
    """Scopes keyed by document identity and by frame element identity."""

    def __init__(self):
        self._by_document: dict[int, FrameScope] = {}
        self._by_frame: dict[int, FrameScope] = {}

    def register(self, scope: FrameScope) -> None:
        self._by_document[id(scope.document)] = scope
        if scope.iframe_element is not None:
            self._by_frame[id(scope.iframe_element)] = scope

    def unregister(self, scope: FrameScope) -> None:
        if self._by_document.get(id(scope.document)) is scope:
            del self._by_document[id(scope.document)]
        if scope.iframe_element is not None and self._by_frame.get(id(scope.iframe_element)) is scope:
            del self._by_frame[id(scope.iframe_element)]

    def scope_for_document(self, document: Any) -> Optional[FrameScope]:
        return self._by_document.get(id(document))

    def scope_for_frame(self, iframe_element: Any) -> Optional[FrameScope]:
        return self._by_frame.get(id(iframe_element))

    def __len__(self) -> int:
        return len(self._by_document)


class FrameBridge:
    """Attaches and detaches nested documents for one recorder."""

    def __init__(self, recorder: "Recorder"):
        self.recorder = recorder
        self.log = logger.bind(component="frame_bridge")

    def attach(self, iframe: Any, sink: list[Action]) -> None:
        """Listen for loads and bridge right away if the document is ready."""
        iframe.add_event_listener("load", self.on_load)
        document = iframe.content_document
        if document is not None and document.ready_state == "complete":
            self.bridge(iframe, sink)

    def on_load(self, event: Any) -> None:
        iframe = event.target
        previous = self.recorder.frames.scope_for_frame(iframe)
        if previous is not None:
            previous.stop()
        self.bridge(iframe, self.recorder.actions)

    def bridge(self, iframe: Any, sink: list[Action]) -> None:
        """Record the nested document and emit its Frame action into `sink`."""
        recorder = self.recorder
        document = iframe.content_document
        scope = FrameScope(recorder, document.body, iframe)
        scope.start()

        body, bootstrap = scope.initial_state
        head = document.head
        for child in head.child_nodes if head is not None else []:
            if child.node_type != NodeType.ELEMENT:
                continue
            if child.tag_name == "STYLE":
                body.append_child(recorder.serializer.serialize(child, bootstrap))
                recorder.retire(child)
            elif child.tag_name == "LINK" and child.get_attribute("rel") == "stylesheet":
                href = child.get_attribute("href") or ""
                body.append_child(ElementNode(
                    id=recorder.ids.allocate(),
                    tag="STYLE",
                    attributes={STYLESHEET_CACHE_ATTRIBUTE: href.rsplit("/", 1)[-1]},
                ))

        text_id = recorder.ids.allocate()
        body.append_child(ElementNode(
            id=recorder.ids.allocate(),
            tag="STYLE",
            children=[TextNode(text_id, recorder.config.scrollbar_suppression_css)],
        ))

        sink.append(Frame(recorder.ids.get(iframe), body))
        sink.extend(bootstrap)
        scope.initial_state = None
        self.log.debug("Frame bridged", frame_id=recorder.ids.get(iframe), body_id=body.id)

    def detach(self, iframe: Any) -> None:
        """Stop the nested scope before dropping the load listener."""
        scope = self.recorder.frames.scope_for_frame(iframe)
        if scope is not None:
            scope.stop()
            self.log.debug("Frame detached")
        iframe.remove_event_listener("load", self.on_load)
