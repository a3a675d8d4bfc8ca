"""Lob segmentation, classification and entity extraction."""

from tasklob.parsing.lob_parser import LOB_PARSER_PROMPT_VERSION, LobParser
from tasklob.parsing.schema import validate_parse_output
from tasklob.parsing.types import ExtractedEntity, ParsedTask, ParseResult

__all__ = [
    "LOB_PARSER_PROMPT_VERSION",
    "ExtractedEntity",
    "LobParser",
    "ParseResult",
    "ParsedTask",
    "validate_parse_output",
]
