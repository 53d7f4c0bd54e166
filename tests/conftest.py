"""Shared fixtures for domrec tests."""

import pytest

from domrec.dom.base import NodeType, Rect
from domrec.dom.memory import Document
from domrec.recording.models import RecorderConfig
from domrec.replay.player import ReplayConfig
from domrec.replay.scheduling import ManualScheduler

OVERLAY_CLASSES = {"mouseCursor", "fakeCaret"}


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (end-to-end record/replay critical path)"
    )


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def tree_shape(node):
    """Comparable structure of a subtree, ignoring replay overlays."""
    if node.node_type in (NodeType.TEXT, NodeType.CDATA_SECTION):
        return node.data
    children = [
        tree_shape(child)
        for child in node.child_nodes
        if not (child.node_type == NodeType.ELEMENT and set(child.class_list) & OVERLAY_CLASSES)
    ]
    shape = [node.tag_name, dict(node.attribute_items()), children]
    value = getattr(node, "value", None)
    if value is not None:
        shape.append(value)
    return shape


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Clear DOMREC_ environment overrides so settings use their defaults."""
    import os

    for key in list(os.environ):
        if key.startswith("DOMREC_"):
            monkeypatch.delenv(key)


@pytest.fixture
def clock():
    """Fake millisecond clock for recorders."""
    return FakeClock()


@pytest.fixture
def document():
    """Live document to record from."""
    return Document(inner_width=800, inner_height=600)


@pytest.fixture
def root(document):
    """Recording root: a DIV laid out at (10, 20) in the body."""
    div = document.create_element("DIV")
    div.set_attribute("id", "root")
    div.bounding_rect = Rect(10, 20, 400, 300)
    document.body.append_child(div)
    return div


@pytest.fixture
def recorder_config():
    """Recorder configuration independent of the environment."""
    return RecorderConfig(
        skip_hidden_ids=["toolbox"],
        scrollbar_suppression_css=".scrollbar { opacity: 0 ! important }",
    )


@pytest.fixture
def make_recorder(clock, recorder_config):
    """Factory starting a recorder with the fake clock."""
    from domrec.recording.recorder import start_recording

    def _make(root_node, config=None):
        return start_recording(root_node, config=config or recorder_config, clock=clock)

    return _make


@pytest.fixture
def host_document():
    """Document the player replays into."""
    return Document(inner_width=804, inner_height=604)


@pytest.fixture
def replay_config():
    """Replay configuration independent of the environment."""
    return ReplayConfig(margin=2, caret_char_width=7.0)


@pytest.fixture
def scheduler():
    """Virtual-time scheduler."""
    return ManualScheduler()


@pytest.fixture
def shape():
    """Structural comparison helper."""
    return tree_shape
