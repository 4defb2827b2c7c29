"""Convert MFi (i-melody) ring tones to Standard MIDI Files."""

from .errors import (  # noqa: F401
    MalformedStream,
    MfiError,
    UnknownControl,
    UnsupportedEvent,
)
from .events import (  # noqa: F401
    ControlEvent,
    ExtendedDataEvent,
    NoteEvent,
    NoteMode,
    Song,
    Track,
)
from .container import MfiFile, MfiHeader  # noqa: F401
from .decoder import decode_track  # noqa: F401
from .scheduler import NoteOffScheduler, PendingNoteOff  # noqa: F401
from .encoder import (  # noqa: F401
    DEFAULT_TIMEBASE,
    convert_timebase,
    encode_track,
    global_timebase,
    remap_bank,
)
from .smf import decode_vlq, encode_vlq  # noqa: F401
from .convert import convert, convert_file, read_song, write_smf  # noqa: F401
