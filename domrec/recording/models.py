"""Data models for recordings."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..config import Settings
from ..errors import MalformedActionError
from .actions import Action, Delay, Label, decode_actions, encode_actions
from .snapshot import SerializedNode, decode_node

# (element, attribute name) -> keep?
AttributeFilter = Callable[[Any, str], bool]

FAKE_FOCUS_ATTRIBUTE = "fakefocus"
FAKE_FOCUS_WITHIN_ATTRIBUTE = "fakefocuswithin"
STYLESHEET_CACHE_ATTRIBUTE = "cached"


@dataclass
class RecorderConfig:
    """Configuration for a recording session."""

    # Hidden DIV/PRE elements with these ids are left out entirely
    skip_hidden_ids: list[str] = field(default_factory=lambda: ["toolbox"])

    # Appended to every bridged frame body
    scrollbar_suppression_css: str = ".scrollbar { opacity: 0 ! important }"

    # None means the serializer's default policy
    attribute_filter: Optional[AttributeFilter] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RecorderConfig":
        """Create a session config from application settings."""
        return cls(
            skip_hidden_ids=list(settings.skip_hidden_ids),
            scrollbar_suppression_css=settings.scrollbar_suppression_css,
        )


@dataclass
class Recording:
    """A complete recording: snapshot, bootstrap actions, timeline and size.

    Example:
        recording = recorder.stop()
        payload = recording.to_json()
        player = Player(host, Recording.from_json(payload))
    """

    initial_state: tuple[SerializedNode, list[Action]]
    actions: list[Action] = field(default_factory=list)
    width: float = 0
    height: float = 0

    @property
    def snapshot(self) -> SerializedNode:
        return self.initial_state[0]

    @property
    def bootstrap_actions(self) -> list[Action]:
        return self.initial_state[1]

    @property
    def action_count(self) -> int:
        """Get count of timeline actions."""
        return len(self.actions)

    @property
    def duration_ms(self) -> int:
        """Total recorded delay in milliseconds."""
        return sum(a.milliseconds for a in self.actions if isinstance(a, Delay))

    @property
    def labels(self) -> list[str]:
        return [a.name for a in self.actions if isinstance(a, Label)]

    def to_dict(self) -> dict:
        """Convert to the wire dictionary."""
        node, bootstrap = self.initial_state
        return {
            "initialState": [node.to_wire(), encode_actions(bootstrap)],
            "actions": encode_actions(self.actions),
            "width": self.width,
            "height": self.height,
        }

    def to_json(self) -> str:
        """Compact JSON; the same recording always yields the same text."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Recording":
        """Create a Recording from its wire dictionary."""
        try:
            node, bootstrap = data["initialState"]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedActionError(f"Bad initialState: {e}") from e

        return cls(
            initial_state=(decode_node(node), decode_actions(bootstrap)),
            actions=decode_actions(data.get("actions", [])),
            width=data.get("width", 0),
            height=data.get("height", 0),
        )

    @classmethod
    def from_json(cls, text: str) -> "Recording":
        return cls.from_dict(json.loads(text))
