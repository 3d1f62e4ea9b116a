# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for cdtbench."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BenchBaseModel(BaseModel):
    """Base model with shared config for cdtbench schemas.

    Attributes are snake_case in Python and camelCase on the wire, matching
    the field names the page script emits.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class FrozenBenchModel(BenchBaseModel):
    """Base model for records that must not change once parsed."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )
