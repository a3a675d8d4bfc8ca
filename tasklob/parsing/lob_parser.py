"""LLM-backed lob parser: segmentation, classification and entity extraction."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from time import perf_counter
from typing import Any

from tasklob.errors import InvalidInputError, ParseFailure
from tasklob.parsing.completion import CompletionOptions, CompletionService
from tasklob.parsing.schema import DEFAULT_MAX_TASKS, validate_parse_output
from tasklob.parsing.types import ParseResult

logger = logging.getLogger(__name__)

LOB_PARSER_PROMPT_VERSION = "lob_parser.v1"
_PROMPT_FILES: dict[str, Path] = {
    "lob_parser.v1": Path(__file__).resolve().parent / "prompts" / "lob_parser_v1.txt",
}
DEFAULT_PARSER_OPTIONS = CompletionOptions(temperature=0.2, max_tokens=4000, json_mode=True)


@lru_cache(maxsize=8)
def get_lob_parser_prompt(version: str = LOB_PARSER_PROMPT_VERSION) -> str:
    """Load a registered prompt version from package data."""

    prompt_file = _PROMPT_FILES.get(version)
    if prompt_file is None:
        raise ParseFailure(f"Lob parser prompt version is not registered: {version}")
    try:
        prompt_text = prompt_file.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ParseFailure(f"Failed to load lob parser prompt file: {prompt_file}") from exc
    if not prompt_text:
        raise ParseFailure(f"Lob parser prompt file is empty: {prompt_file}")
    return prompt_text


def build_system_prompt(company_context: Mapping[str, Any] | None = None) -> str:
    """Combine the fixed parsing instructions with optional serialized company context."""

    prompt = get_lob_parser_prompt()
    if not company_context:
        return prompt
    serialized = json.dumps(dict(company_context), indent=2, ensure_ascii=True, sort_keys=True, default=str)
    return f"{prompt}\n\n## Company Context\n{serialized}"


class LobParser:
    """Single-attempt parser. Retry policy belongs to the completion service or the caller."""

    def __init__(
        self,
        completion: CompletionService,
        *,
        options: CompletionOptions = DEFAULT_PARSER_OPTIONS,
        max_tasks: int = DEFAULT_MAX_TASKS,
    ) -> None:
        self._completion = completion
        self._options = options
        self._max_tasks = max_tasks
        self._last_raw_output: str | None = None

    def parse(self, text: str, company_context: Mapping[str, Any] | None = None) -> ParseResult:
        """Split ``text`` into validated tasks and extracted entities.

        Raises ``InvalidInputError`` for blank text, ``ProviderError`` when the
        completion call fails, and ``MalformedOutputError`` when the output is
        not JSON after the repair attempt.
        """

        self._last_raw_output = None
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Lob text is required and cannot be blank.")
        clean_text = text.strip()

        system_prompt = build_system_prompt(company_context)
        started = perf_counter()
        raw_output = self._completion.complete_json(system_prompt, clean_text, options=self._options)
        completion_ms = (perf_counter() - started) * 1000.0
        self._last_raw_output = raw_output

        result = validate_parse_output(raw_output, max_tasks=self._max_tasks)
        logger.info(
            "parse.timing prompt_version=%s text_chars=%d tasks=%d entities=%d dropped_tasks=%d completion_ms=%.2f",
            LOB_PARSER_PROMPT_VERSION,
            len(clean_text),
            len(result.tasks),
            len(result.entities),
            result.dropped_tasks,
            completion_ms,
        )
        return result

    @property
    def prompt_version(self) -> str:
        return LOB_PARSER_PROMPT_VERSION

    @property
    def model_name(self) -> str:
        return str(getattr(self._completion, "model", self._completion.__class__.__name__))

    @property
    def last_raw_output(self) -> str | None:
        return self._last_raw_output
