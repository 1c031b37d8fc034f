"""PII engine result types.

Findings hold the placeholder → original mapping produced by detection.
The mapping can contain sensitive material, so it is read-only, hidden
from repr, and only ever handed back to the engine's restore call.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from veilstream.schemas.chat import ChatCompletionRequest


@dataclass(frozen=True, slots=True)
class Findings:
    """Detection result for one request."""

    count: int = 0
    mapping: Mapping[str, str] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError("Findings count must be non-negative")
        if not isinstance(self.mapping, MappingProxyType):
            object.__setattr__(self, "mapping", MappingProxyType(dict(self.mapping)))


@dataclass(frozen=True, slots=True)
class Detection:
    """Findings plus the obfuscated copy of the request."""

    findings: Findings
    request: ChatCompletionRequest
