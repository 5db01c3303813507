"""
Extraction - Recovering structured payloads from oracle replies.

The oracle is untrusted: replies may arrive as native tool calls, legacy
function calls or free text holding almost-JSON. The extractor tries each
envelope in turn; the repair chain fixes the text in between.
"""

from .extractor import (
    StructuredResponseExtractor,
    ExtractedRules,
    HeuristicExtraction,
    message_of,
    content_text,
)
from .repair import (
    repair,
    last_resort_repair,
    parse_lenient,
    RepairError,
)

__all__ = [
    "StructuredResponseExtractor",
    "ExtractedRules",
    "HeuristicExtraction",
    "message_of",
    "content_text",
    "repair",
    "last_resort_repair",
    "parse_lenient",
    "RepairError",
]
