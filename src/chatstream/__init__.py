"""chatstream: streaming chat core for an NDJSON chat API.

Decodes the `{t, v}` event stream, accumulates it into conversation state,
and reconciles embedded artifacts and edit directives across the history.
"""

__version__ = "0.1.0"

from .accumulator import IdGenerator, MessageAccumulator
from .events import StreamEvent, StreamingPhase
from .models import Artifact, ArtifactEdit, ClarifyQuestion, Message
from .ndjson import LineFramer, aiter_events, decode_line

__all__ = [
    "__version__",
    "Artifact",
    "ArtifactEdit",
    "ClarifyQuestion",
    "IdGenerator",
    "LineFramer",
    "Message",
    "MessageAccumulator",
    "StreamEvent",
    "StreamingPhase",
    "aiter_events",
    "decode_line",
]
