"""Recording module - capture a live tree as a snapshot plus an action log.

This module provides:
- The action codec (one dataclass per wire tag)
- The tree serializer and its snapshot node types
- The mutation recorder and the nested-document frame bridge
"""

from .actions import (
    Action,
    ActionKind,
    Add,
    Attr,
    CanvasData,
    Delay,
    Frame,
    Input,
    Label,
    MouseDown,
    MouseMove,
    MouseUp,
    PointerAction,
    Remove,
    Scroll,
    StyleFlush,
    Text,
    decode_action,
    decode_actions,
    encode_action,
    encode_actions,
)
from .frames import FrameBridge, FrameRegistry, FrameScope
from .ids import IdTable, ReentrantGuard
from .models import RecorderConfig, Recording
from .recorder import Recorder, start_recording
from .serializer import TreeSerializer, default_attribute_filter
from .snapshot import ElementNode, TextNode, decode_node

__all__ = [
    # Actions
    "Action",
    "ActionKind",
    "Add",
    "Remove",
    "Attr",
    "Text",
    "Frame",
    "Input",
    "CanvasData",
    "Scroll",
    "StyleFlush",
    "PointerAction",
    "MouseMove",
    "MouseDown",
    "MouseUp",
    "Delay",
    "Label",
    "encode_action",
    "encode_actions",
    "decode_action",
    "decode_actions",
    # Snapshot
    "ElementNode",
    "TextNode",
    "decode_node",
    # Models
    "RecorderConfig",
    "Recording",
    # Serializer
    "IdTable",
    "ReentrantGuard",
    "TreeSerializer",
    "default_attribute_filter",
    # Recorder
    "FrameBridge",
    "FrameRegistry",
    "FrameScope",
    "Recorder",
    "start_recording",
]
