"""Exception taxonomy for recording and replay.

Recorder and player errors are fatal: they signal a broken live-tree
invariant or an inconsistent action log, and the session that raised them
must be discarded.
"""


class DomRecError(Exception):
    """Base exception for all domrec errors."""
    pass


# =============================================================================
# Recorder
# =============================================================================


class RecorderError(DomRecError):
    """Base exception for recording errors."""
    pass


class AlreadySerializedError(RecorderError):
    """Raised when a node that already carries an id is serialized again.

    This means two recording sessions overlap on the same live node.
    """

    def __init__(self, node_id: int):
        super().__init__(f"Already serialized {node_id}")
        self.node_id = node_id


class UnsupportedNodeError(RecorderError):
    """Raised for node kinds the serializer does not understand."""
    pass


class UnknownEventTypeError(RecorderError):
    """Raised when a pointer listener receives an unexpected event type."""
    pass


class UnknownScrollTargetError(RecorderError):
    """Raised when scrolled-into-view metadata is neither a tracked node nor "bottom"."""
    pass


# =============================================================================
# Replay
# =============================================================================


class ReplayError(DomRecError):
    """Base exception for replay errors."""
    pass


class UnknownNodeIdError(ReplayError, KeyError):
    """Raised when an action references an id the player does not know."""

    def __init__(self, node_id):
        super().__init__(f"Unknown ID {node_id}")
        self.node_id = node_id

    def __str__(self) -> str:
        return self.args[0]


class UnknownLabelError(ReplayError, LookupError):
    """Raised when seeking or playing to a label that is not in the log."""

    def __init__(self, label: str):
        super().__init__(f"Unknown label {label}")
        self.label = label


class UnknownActionError(ReplayError):
    """Raised for action tags outside the closed action enumeration."""
    pass


class MalformedActionError(ReplayError, ValueError):
    """Raised when an encoded action or node does not have the expected shape."""
    pass


# =============================================================================
# Stylesheets
# =============================================================================


class StylesheetFetchError(DomRecError):
    """Raised when a frame stylesheet cannot be fetched."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class ConfigurationError(DomRecError):
    """Raised when settings cannot be applied (e.g. an unusable script URL)."""
    pass
