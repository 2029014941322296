"""Convert XMIDI (``.xmi``) music tracks into Standard MIDI Format-0 files."""

from .container import (  # noqa: F401
    Branch,
    Timbre,
    XMIContainer,
    parse_container,
)
from .convert import (  # noqa: F401
    ConversionOptions,
    convert,
    convert_track,
    load_options,
    options_from_dict,
)
from .cursor import ByteCursor  # noqa: F401
from .decoder import (  # noqa: F401
    MAX_PENDING,
    EventDecoder,
    NoteOffQueue,
    PendingNoteOff,
    decode_events,
)
from .errors import (  # noqa: F401
    CapacityExceeded,
    MalformedContainer,
    MalformedEvent,
    TruncatedInput,
    XMIError,
)
from .retime import (  # noqa: F401
    DEFAULT_TIMEBASE,
    REFERENCE_QUARTER_NOTE_US,
    REFERENCE_TIMEBASE,
    TempoState,
    retime_track,
    scale_delta,
)
from .smf import build_header, build_smf, midi_path_for  # noqa: F401
from .varlen import encode_varlen, read_varlen, read_xmi_delay  # noqa: F401
