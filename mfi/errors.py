from __future__ import annotations


class MfiError(ValueError):
    """Base class for every data error raised while converting an MFi file."""


class MalformedStream(MfiError):
    """Input ended early or is structurally invalid."""


class UnsupportedEvent(MfiError):
    """A track record whose shape the decoder does not handle."""

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(f"{message} at offset 0x{offset:X}")
        self.offset = offset


class UnknownControl(MfiError):
    """A control record with no entry in the remapping table."""

    def __init__(self, event_class: int, event_id: int) -> None:
        super().__init__(
            f"unknown control event class {event_class:X} id 0x{event_id:02X}"
        )
        self.event_class = event_class
        self.event_id = event_id
