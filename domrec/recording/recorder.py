"""Mutation recorder - turn live-tree changes into an ordered action log.

The recorder observes a root node (and every nested document under it),
converts each batch of mutation records into Remove/Attr/Text/Add actions in
a replay-safe order, and converts discrete events (pointer, input, scroll,
canvas, focus, forced style flush) into actions. Real time between batches
becomes Delay actions.

Example:
    recorder = start_recording(root)
    ...  # mutate the live tree, dispatch events
    recorder.label("checkpoint")
    recording = recorder.stop()
"""

import time
from typing import Any, Callable, Optional

import structlog

from ..config import get_settings
from ..dom.base import NodeType
from ..errors import RecorderError
from .actions import Action, Add, Attr, Delay, Label, Remove, Text
from .frames import FrameBridge, FrameRegistry, FrameScope
from .ids import IdTable, ReentrantGuard
from .models import (
    FAKE_FOCUS_ATTRIBUTE,
    FAKE_FOCUS_WITHIN_ATTRIBUTE,
    RecorderConfig,
    Recording,
)
from .snapshot import SerializedNode
from .serializer import TreeSerializer

logger = structlog.get_logger()


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


class Recorder:
    """Recording session rooted at one live node."""

    def __init__(
        self,
        root: Any,
        config: Optional[RecorderConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Start recording `root`.

        Args:
            root: Live node to record; ids 1..N are assigned to its subtree
            config: Session configuration (defaults to application settings)
            clock: Millisecond clock (defaults to a monotonic clock)
        """
        self.config = config or RecorderConfig.from_settings(get_settings())
        self._clock = clock or _now_ms
        self.log = logger.bind(component="recorder")

        self.ids = IdTable()
        self.actions: list[Action] = []
        self.last_action_time = self._clock()
        self.focused_element = None
        self._labels: set[str] = set()
        self._stopped = False

        # Time accounting happens only at the outermost flush
        self._guard = ReentrantGuard(
            on_outermost_enter=self._account_elapsed_time,
            on_outermost_exit=self._reset_time_baseline,
        )

        self.frames = FrameRegistry()
        self.bridge = FrameBridge(self)
        self.serializer = TreeSerializer(
            self.ids,
            self.config,
            self.frames,
            attach_frame=self.bridge.attach,
        )

        self.root_scope = FrameScope(self, root)
        self.root_scope.start()
        self.evaluate_focus()

        # Anything emitted while starting belongs to the bootstrap list
        node, bootstrap = self.root_scope.initial_state
        self.initial_state: tuple[SerializedNode, list[Action]] = (node, bootstrap + self.actions)
        self.actions = []

        self.log.info("Recording started", node_count=len(self.ids))

    @property
    def stopped(self) -> bool:
        return self._stopped

    # -------------------------------------------------------------------------
    # Time accounting
    # -------------------------------------------------------------------------

    def _account_elapsed_time(self) -> None:
        now = self._clock()
        if now > self.last_action_time:
            self.actions.append(Delay(int(now - self.last_action_time)))

    def _reset_time_baseline(self) -> None:
        # Time spent recording is not replay time
        self.last_action_time = self._clock()

    def delay(self, seconds: float) -> None:
        """Stretch the next timing gap by `seconds`."""
        self.last_action_time -= int(seconds * 1000)

    def label(self, name: str) -> None:
        """Add a named checkpoint after every change made so far."""
        if name in self._labels:
            raise RecorderError(f"Duplicate label {name}")
        self.root_scope.flush_observer()
        self._labels.add(name)
        self.actions.append(Label(name))

    # -------------------------------------------------------------------------
    # Mutation processing
    # -------------------------------------------------------------------------

    def process_records(self, records: list, observer: Any = None) -> None:
        """Observer callback: convert one batch of records into actions.

        Nested invocations (a flush triggered while processing, e.g. when a
        removed frame is detached) skip time accounting.
        """
        with self._guard:
            try:
                self._process_removals(records)
                targets = self._process_changes(records)
                self._process_additions(targets)
            except Exception as e:
                self.log.error("Mutation processing failed", error=str(e))
                raise

    def _process_removals(self, records: list) -> None:
        # A node has an id iff it was in the non-excluded tree at the start of
        # the batch. Every removal is handled before any addition so an Add
        # never points at a node that is about to go away.
        for record in records:
            if record.type != "childList" or record.target not in self.ids:
                continue
            for child in record.removed_nodes:
                child_id = self.ids.get(child)
                if child_id is None:
                    continue
                self.actions.append(Remove(child_id))
                self.retire(child)

    def _process_changes(self, records: list) -> list:
        # From here on a node has an id iff it was in the tree at the start of
        # the batch and was not removed during it.
        targets = []
        queued: set[int] = set()
        for record in records:
            target = record.target
            target_id = self.ids.get(target)
            if target_id is None:
                continue
            if record.type == "attributes":
                name = record.attribute_name
                if self.serializer.allow_attribute(target, name):
                    self.actions.append(Attr(target_id, name, target.get_attribute(name)))
            elif record.type == "characterData":
                self.actions.append(Text(target_id, target.data))
            elif record.type == "childList":
                if record.added_nodes and id(target) not in queued:
                    queued.add(id(target))
                    targets.append(target)
        return targets

    def _process_additions(self, targets: list) -> None:
        for parent in targets:
            parent_id = self.ids.get(parent)
            for child in reversed(parent.child_nodes):
                if child in self.ids:
                    continue
                bootstrap: list[Action] = []
                serialized = self.serializer.serialize(child, bootstrap)
                if serialized is None:
                    continue
                self.actions.append(Add(
                    parent_id,
                    self._next_tracked_sibling_id(child),
                    serialized,
                    bootstrap,
                ))

    def _next_tracked_sibling_id(self, node: Any) -> Optional[int]:
        # Excluded siblings have no id; anchor on the next one that does
        sibling = node.next_sibling
        while sibling is not None:
            sibling_id = self.ids.get(sibling)
            if sibling_id is not None:
                return sibling_id
            sibling = sibling.next_sibling
        return None

    def retire(self, node: Any) -> None:
        """Retire `node` and every tracked descendant; detach removed frames."""
        self.ids.retire(node)
        self.serializer.unwatch_scroll(node)
        for child in node.child_nodes:
            if child in self.ids:
                self.retire(child)
        if node.node_type == NodeType.ELEMENT and node.tag_name == "IFRAME":
            self.bridge.detach(node)

    # -------------------------------------------------------------------------
    # Fake focus
    # -------------------------------------------------------------------------

    def _focus_chain(self, element: Any) -> tuple[list, list[FrameScope]]:
        """Element and its ancestors across frame boundaries, plus the scopes crossed."""
        chain = []
        scopes = []
        ancestor = element
        while ancestor is not None:
            chain.append(ancestor)
            parent = ancestor.parent_element
            if parent is None:
                scope = self.frames.scope_for_document(ancestor.owner_document)
                if scope is None:
                    break
                scopes.append(scope)
                parent = scope.iframe_element
            ancestor = parent
        return chain, scopes

    def _find_focused_element(self) -> Any:
        scope = self.root_scope
        while True:
            element = scope.document.active_element
            if element is None or not scope.root.contains(element):
                return None
            if element.tag_name != "IFRAME":
                return element
            inner = self.frames.scope_for_frame(element)
            if inner is None:
                return element
            scope = inner

    def clear_fake_focus(self) -> None:
        if self.focused_element is None:
            return
        self.focused_element.remove_attribute(FAKE_FOCUS_ATTRIBUTE)
        chain, _ = self._focus_chain(self.focused_element)
        for ancestor in chain:
            ancestor.remove_attribute(FAKE_FOCUS_WITHIN_ATTRIBUTE)

    def evaluate_focus(self) -> None:
        """Move the fakefocus/fakefocuswithin markers to the focused element."""
        element = self._find_focused_element()
        if element is self.focused_element:
            return

        self.clear_fake_focus()
        if element is not None:
            element.set_attribute(FAKE_FOCUS_ATTRIBUTE, "")
            chain, scopes = self._focus_chain(element)
            for ancestor in chain:
                ancestor.set_attribute(FAKE_FOCUS_WITHIN_ATTRIBUTE, "")
            for scope in scopes:
                if scope is not self.root_scope:
                    scope.flush_observer()

        self.root_scope.flush_observer()
        self.focused_element = element

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def stop(self) -> Recording:
        """Flush, detach everything and return the finished recording."""
        if self._stopped:
            raise RecorderError("Recorder already stopped")

        rect = self.root_scope.root.get_bounding_client_rect()
        focus_chain = []
        if self.focused_element is not None:
            focus_chain, _ = self._focus_chain(self.focused_element)

        self.root_scope.stop()

        # Markers are cleared after detaching so the log does not see them go
        if self.focused_element is not None:
            self.focused_element.remove_attribute(FAKE_FOCUS_ATTRIBUTE)
        for ancestor in focus_chain:
            ancestor.remove_attribute(FAKE_FOCUS_WITHIN_ATTRIBUTE)
        self.focused_element = None

        recording = Recording(
            initial_state=self.initial_state,
            actions=self.actions,
            width=rect.width,
            height=rect.height,
        )
        self._stopped = True

        self.log.info(
            "Recording stopped",
            action_count=recording.action_count,
            duration_ms=recording.duration_ms,
        )
        return recording


def start_recording(
    root: Any,
    config: Optional[RecorderConfig] = None,
    clock: Optional[Callable[[], int]] = None,
) -> Recorder:
    """Convenience function to start recording `root`.

    Args:
        root: Live node to record
        config: Session configuration
        clock: Millisecond clock

    Returns:
        The running Recorder
    """
    return Recorder(root, config=config, clock=clock)
