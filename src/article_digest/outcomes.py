"""Classified result of a single provider attempt."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Success:
    payload: Any


@dataclass(frozen=True)
class RateLimited:
    retry_after: int


@dataclass(frozen=True)
class RecoverableFailure:
    message: str
    wait_hint: float | None = None


@dataclass(frozen=True)
class FatalFailure:
    message: str
    status_code: int | None = None


CallOutcome = Union[Success, RateLimited, RecoverableFailure, FatalFailure]
