# Copyright (c) Syntropy Systems
"""Extract the test page's result record from console output."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from cdtbench.models.outcome import ActionOutcome

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

RESULT_SENTINEL = "CDT_TEST_RESULT:"


def parse_result(lines: Iterable[str]) -> ActionOutcome | None:
    """Return the first decodable result line, or None if there is none.

    Malformed payloads are logged and skipped so a later line can still
    supply the result.
    """
    for line in lines:
        if not line.startswith(RESULT_SENTINEL):
            continue
        payload = line[len(RESULT_SENTINEL):]
        try:
            return ActionOutcome.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(
                "Failed to parse result line %r: %s", line, e.errors()[0]["msg"]
            )
    return None
