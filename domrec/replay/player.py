"""Player - rebuild a recorded tree under a host and step or play its log.

The player owns a node table mapping recorded ids to the nodes it created.
`reset()` rebuilds the initial state; `step()` applies one action; `seek()`
jumps to a label; `play()` walks the log in real (scaled) time, one timer per
Delay, optionally looping back to the start.

Example:
    player = Player(host_document, recording)
    player.seek("checkpoint")
    player.play(PlayOptions(loop=True, time_scale=2))
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import Settings, get_settings
from ..errors import ReplayError, UnknownActionError, UnknownLabelError, UnknownNodeIdError
from ..recording.actions import (
    Action,
    ActionKind,
    Add,
    Attr,
    CanvasData,
    Delay,
    Frame,
    Input,
    Label,
    PointerAction,
    Remove,
    Scroll,
    StyleFlush,
    Text,
)
from ..recording.models import FAKE_FOCUS_ATTRIBUTE, STYLESHEET_CACHE_ATTRIBUTE, Recording
from ..recording.snapshot import ElementNode, SerializedNode
from .overlay import CaretOverlay, CursorOverlay
from .scheduling import AsyncioScheduler, ImageDecoder, ScheduledImageDecoder, Scheduler
from .stylesheets import StylesheetCache

logger = structlog.get_logger()

PLAYING_CLASS = "playing"
SCROLL_TO_BOTTOM = 1000000


@dataclass
class ReplayConfig:
    """Host presentation settings."""

    margin: int = 2
    caret_char_width: float = 7.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReplayConfig":
        return cls(
            margin=settings.replay_margin,
            caret_char_width=settings.caret_char_width,
        )


class PlayOptions(BaseModel):
    """Options for Player.play().

    Accepts the camelCase `timeScale` key of the embedding API as well.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    end: Optional[str] = None
    loop: bool = False
    time_scale: float = Field(1.0, gt=0, alias="timeScale")


@dataclass(eq=False)
class _ImageRequest:
    data_url: str


@dataclass
class _PlayState:
    stop_at: int
    loop: bool
    time_scale: float
    play_start: float
    one_loop: int = 0
    play_time: int = 0
    loop_to: int = 0


class Player:
    """Reconstructs and animates one recording inside a host document."""

    # Every ActionKind maps to exactly one handler
    _HANDLERS = {
        ActionKind.ADD: "_apply_add",
        ActionKind.CANVAS_DATA: "_apply_canvas_data",
        ActionKind.DELAY: "_apply_nothing",
        ActionKind.FRAME: "_apply_frame",
        ActionKind.STYLE_FLUSH: "_apply_style_flush",
        ActionKind.INPUT: "_apply_input",
        ActionKind.LABEL: "_apply_nothing",
        ActionKind.MOUSE_MOVE: "_apply_mouse_move",
        ActionKind.MOUSE_DOWN: "_apply_mouse_down",
        ActionKind.ATTR: "_apply_attr",
        ActionKind.SCROLL: "_apply_scroll",
        ActionKind.TEXT: "_apply_text",
        ActionKind.MOUSE_UP: "_apply_mouse_up",
        ActionKind.REMOVE: "_apply_remove",
    }

    def __init__(
        self,
        host_document: Any,
        recording: Union[Recording, dict, str],
        config: Optional[ReplayConfig] = None,
        scheduler: Optional[Scheduler] = None,
        stylesheet_cache: Optional[StylesheetCache] = None,
        image_decoder: Optional[ImageDecoder] = None,
    ):
        """Build the initial state under `host_document.body`.

        Args:
            host_document: Document to replay into
            recording: Recording, wire dictionary or JSON text
            config: Presentation settings (defaults to application settings)
            scheduler: Timer source (defaults to the running asyncio loop)
            stylesheet_cache: Preloaded frame stylesheets
            image_decoder: Canvas data-URL decoder
        """
        if isinstance(recording, str):
            recording = Recording.from_json(recording)
        elif isinstance(recording, dict):
            recording = Recording.from_dict(recording)

        self.recording = recording
        self.actions: list[Action] = recording.actions
        self.host_document = host_document
        self.host = host_document.body
        self.config = config or ReplayConfig.from_settings(get_settings())
        self.scheduler = scheduler or AsyncioScheduler()
        self.stylesheet_cache = stylesheet_cache if stylesheet_cache is not None else StylesheetCache()
        self.image_decoder = image_decoder or ScheduledImageDecoder(self.scheduler)
        self.log = logger.bind(component="player")

        self.index = 0
        self.root: Any = None
        self.nodes: dict[int, Any] = {}
        self._node_ids: dict[int, int] = {}
        self._loading_images: dict[int, tuple[Any, _ImageRequest]] = {}
        self._pending_timer: Any = None
        self._maybe_focused: Any = None
        self._maybe_focused_changed = False
        self.scale_x = 1.0
        self.scale_y = 1.0

        self.cursor = CursorOverlay(host_document)
        self.caret = CaretOverlay(host_document, self.config.caret_char_width)

        self.reset()
        self.resize()

    # -------------------------------------------------------------------------
    # Reconstruction
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Rebuild the initial state from scratch."""
        self.index = 0
        self.nodes.clear()
        self._node_ids.clear()
        self._loading_images.clear()
        self.caret.element = None
        self.host.text_content = ""

        snapshot, bootstrap = self.recording.initial_state
        self.root = self.deserialize(snapshot)
        self.root.style["width"] = f"{self.recording.width:g}px"
        self.root.style["height"] = f"{self.recording.height:g}px"
        self.host.append_child(self.root)
        for action in bootstrap:
            self.do_action(action)
        self._notify_possible_focus_change()

    def resize(self) -> None:
        """Scale the reconstruction to fit the host window."""
        window = self.host_document.window
        margin = self.config.margin
        if not self.recording.width or not self.recording.height or not window.inner_width:
            return
        self.scale_x = (window.inner_width - 2 * margin) / self.recording.width
        self.scale_y = (window.inner_height - 2 * margin) / self.recording.height
        self.host.style["transform"] = (
            f"translate({margin}px, {margin}px) scale({self.scale_x:g}, {self.scale_y:g})"
        )
        self.host.style["transform-origin"] = "0 0"

    def deserialize(self, obj: SerializedNode) -> Any:
        """Create host nodes for a snapshot subtree and register their ids."""
        document = self.host_document
        if isinstance(obj, ElementNode):
            node = document.create_element(obj.tag)
            for name, value in (obj.attributes or {}).items():
                if name == STYLESHEET_CACHE_ATTRIBUTE and obj.tag == "STYLE":
                    text = self.stylesheet_cache.get(value)
                    if text is None:
                        self.log.warning("Stylesheet not cached", key=value)
                    else:
                        node.text_content = text
                    continue
                if name == FAKE_FOCUS_ATTRIBUTE:
                    self._maybe_focused = node
                    self._maybe_focused_changed = True
                node.set_attribute(name, value)
            for child in obj.children or []:
                node.append_child(self.deserialize(child))
        else:
            node = document.create_text_node(obj.data or "")

        self.nodes[obj.id] = node
        self._node_ids[id(node)] = obj.id
        return node

    def node(self, node_id: Optional[int]) -> Any:
        """Node created for `node_id` (None maps to None).

        Raises:
            UnknownNodeIdError: The id was never created or has been removed.
        """
        if node_id is None:
            return None
        node = self.nodes.get(node_id)
        if node is None:
            raise UnknownNodeIdError(node_id)
        return node

    def _forget(self, node: Any) -> None:
        node_id = self._node_ids.pop(id(node), None)
        if node_id is not None and self.nodes.get(node_id) is node:
            del self.nodes[node_id]
        self._loading_images.pop(id(node), None)
        for child in node.child_nodes:
            self._forget(child)
        content_document = getattr(node, "content_document", None)
        if content_document is not None and content_document.body is not None:
            self._forget(content_document.body)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def step(self) -> Action:
        """Apply the action at the cursor and advance it.

        Raises:
            ReplayError: The cursor is already at the end of the log.
        """
        if self.index >= len(self.actions):
            raise ReplayError("No more actions")
        action = self.actions[self.index]
        self.index += 1
        self.do_action(action)
        self._notify_possible_focus_change()
        return action

    def do_action(self, action: Action) -> None:
        """Apply one action to the reconstruction.

        Raises:
            UnknownActionError: Not an action of a known kind.
            UnknownNodeIdError: The action references an unknown id.
        """
        kind = getattr(action, "kind", None)
        handler = self._HANDLERS.get(kind)
        if handler is None:
            raise UnknownActionError(f"Unknown action {action!r}")
        getattr(self, handler)(action)

    def _apply_nothing(self, action: Action) -> None:
        pass

    def _apply_add(self, action: Add) -> None:
        parent = self.node(action.parent_id)
        reference = self.node(action.next_sibling_id)
        parent.insert_before(self.deserialize(action.node), reference)
        for nested in action.actions:
            self.do_action(nested)

    def _apply_remove(self, action: Remove) -> None:
        node = self.node(action.node_id)
        self._forget(node)
        node.remove()

    def _apply_attr(self, action: Attr) -> None:
        node = self.node(action.node_id)
        if action.value is None:
            node.remove_attribute(action.name)
        else:
            node.set_attribute(action.name, action.value)
        if action.name == FAKE_FOCUS_ATTRIBUTE:
            self._maybe_focused = node
            self._maybe_focused_changed = True

    def _apply_text(self, action: Text) -> None:
        self.node(action.node_id).data = action.data

    def _apply_input(self, action: Input) -> None:
        node = self.node(action.node_id)
        if action.value is not None:
            node.value = action.value
        self._maybe_focused_changed = True

    def _apply_style_flush(self, action: StyleFlush) -> None:
        self.node(action.node_id).get_bounding_client_rect()

    def _apply_mouse_move(self, action: PointerAction) -> None:
        self.cursor.move(self.host, action.x, action.y)

    def _apply_mouse_down(self, action: PointerAction) -> None:
        self.cursor.move(self.host, action.x, action.y)
        self.cursor.press()

    def _apply_mouse_up(self, action: PointerAction) -> None:
        self.cursor.move(self.host, action.x, action.y)
        self.cursor.release()

    def _apply_scroll(self, action: Scroll) -> None:
        container = self.node(action.node_id)
        if not container.get_client_rects():
            # Not laid out; nothing to scroll
            return
        if action.to_bottom:
            container.scroll_top = SCROLL_TO_BOTTOM
            return

        element = self.node(action.target)
        offset_y = 0
        ancestor = element
        while ancestor is not None and ancestor is not container:
            offset_y += ancestor.offset_top
            ancestor = ancestor.offset_parent

        height = element.offset_height
        visible_top = container.scroll_top
        visible_bottom = visible_top + container.client_height
        if offset_y < visible_top or offset_y + height > visible_bottom:
            if action.centered:
                y = offset_y - (container.client_height - height) / 2
            else:
                y = offset_y - (action.offset or 0)
            container.scroll_to(0, y)

    def _apply_frame(self, action: Frame) -> None:
        frame = self.node(action.node_id)
        body = self.deserialize(action.body)
        if frame.content_document.ready_state == "complete":
            self._setup_frame(frame, body)
            return

        def on_load(event: Any) -> None:
            frame.remove_event_listener("load", on_load)
            # The reconstruction may have been rebuilt since
            if self.nodes.get(action.node_id) is not frame:
                return
            self._setup_frame(frame, body)

        frame.add_event_listener("load", on_load)

    def _setup_frame(self, frame: Any, body: Any) -> None:
        document = frame.content_document
        previous = document.body
        if previous is not None:
            self._forget(previous)
            previous.remove()
        document.document_element.append_child(body)
        self._notify_possible_focus_change()

    def _apply_canvas_data(self, action: CanvasData) -> None:
        canvas = self.node(action.node_id)
        request = _ImageRequest(action.data_url)
        self._loading_images[id(canvas)] = (canvas, request)
        self.image_decoder.decode(action.data_url, lambda: self._image_decoded(canvas, request))

    def _image_decoded(self, canvas: Any, request: _ImageRequest) -> None:
        entry = self._loading_images.get(id(canvas))
        if entry is None or entry[1] is not request:
            # Superseded by a newer CanvasData for the same canvas
            return
        del self._loading_images[id(canvas)]
        canvas.draw_image(request.data_url)

    def _notify_possible_focus_change(self) -> None:
        if not self._maybe_focused_changed:
            return
        self._maybe_focused_changed = False
        self.caret.clear()
        element = self._maybe_focused
        if element is not None and element.has_attribute(FAKE_FOCUS_ATTRIBUTE) and element.is_connected:
            self.caret.place(element)

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def label_index(self, name: Optional[str], default: Optional[int] = None) -> int:
        """Index of the Label action called `name`.

        Raises:
            UnknownLabelError: No such label (and `name` is not None).
        """
        if name is None:
            return default
        for index, action in enumerate(self.actions):
            if isinstance(action, Label) and action.name == name:
                return index
        raise UnknownLabelError(name)

    def _seek_internal(self, index: int) -> None:
        if self.index > index:
            self.reset()
        while self.index < index:
            self.step()

    def seek(self, name: Optional[str] = None) -> None:
        """Stop playing and jump to the label `name` (the start when None)."""
        index = self.label_index(name, 0)
        self.stop()
        self._seek_internal(index)
        self.log.debug("Seeked", label=name, index=index)

    def stopped(self) -> bool:
        return self._pending_timer is None

    def stop(self) -> None:
        """Cancel the pending play timer, if any."""
        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None
        self.host_document.document_element.class_list.remove(PLAYING_CLASS)

    def play(self, options: Union[PlayOptions, dict, None] = None) -> None:
        """Play from the current position.

        Args:
            options: PlayOptions or a dictionary of them (`end`, `loop`,
                `timeScale`/`time_scale`)

        Raises:
            UnknownLabelError: `end` names no label.
        """
        if options is None:
            options = PlayOptions()
        elif isinstance(options, dict):
            options = PlayOptions.model_validate(options)

        self.stop()
        stop_at = len(self.actions) if options.end is None else self.label_index(options.end)
        state = _PlayState(
            stop_at=stop_at,
            loop=options.loop,
            time_scale=options.time_scale,
            play_start=self.scheduler.now(),
        )

        if state.loop:
            state.one_loop = sum(
                action.milliseconds
                for action in self.actions[state.loop_to:stop_at]
                if isinstance(action, Delay)
            )
            if state.one_loop <= 0:
                # A zero-length loop would never yield
                state.loop = False

        self.host_document.document_element.class_list.add(PLAYING_CLASS)
        self.log.debug(
            "Playback started",
            index=self.index,
            stop_at=stop_at,
            loop=state.loop,
            time_scale=state.time_scale,
        )
        self._play_until_blocked(state)

    def _play_until_blocked(self, state: _PlayState) -> None:
        self._pending_timer = None
        while True:
            if self.index >= state.stop_at:
                if not state.loop:
                    break
                elapsed = self.scheduler.now() - state.play_start
                # Skip whole loops that have already elapsed
                while elapsed > state.time_scale * (state.play_time + state.one_loop):
                    state.play_time += state.one_loop
                self._seek_internal(state.loop_to)

            action = self.step()
            if isinstance(action, Delay):
                state.play_time += action.milliseconds
                elapsed = self.scheduler.now() - state.play_start
                if elapsed < state.time_scale * state.play_time:
                    self._pending_timer = self.scheduler.call_later(
                        state.time_scale * state.play_time - elapsed,
                        lambda: self._play_until_blocked(state),
                    )
                    return

        self.host_document.document_element.class_list.remove(PLAYING_CLASS)
        self.log.debug("Playback finished", index=self.index)

    def dispose(self) -> None:
        """Stop playing and remove the reconstruction from the host."""
        self.stop()
        self.host.text_content = ""
        self.nodes.clear()
        self._node_ids.clear()
        self._loading_images.clear()


if set(Player._HANDLERS) != set(ActionKind):
    raise RuntimeError("Player does not handle every action kind")
