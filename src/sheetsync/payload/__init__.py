"""Update payload construction: row -> envelope -> resolved pairs -> entity shape -> wire dict."""

from src.sheetsync.payload.assembler import assemble, finalize
from src.sheetsync.payload.builder import build_envelope
from src.sheetsync.payload.envelope import PayloadEnvelope, RangeKind, RangePair
from src.sheetsync.payload.ranges import resolve_pairs

__all__ = [
    "assemble",
    "finalize",
    "build_envelope",
    "PayloadEnvelope",
    "RangeKind",
    "RangePair",
    "resolve_pairs",
]
