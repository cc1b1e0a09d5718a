# src/cache/models.py — v2
"""Cache domain models: FingerprintEntry."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from paravault.cache.fingerprint import ALGORITHM_VERSION


class FingerprintEntry(BaseModel):
    """Last recorded fingerprint of one tracked file."""

    relative_path: str
    hash: str
    file_size_bytes: int = Field(ge=0)
    last_checked: datetime
    algorithm: str = ALGORITHM_VERSION

    @property
    def is_current(self) -> bool:
        """Whether this entry was produced by the running hash algorithm."""
        return self.algorithm == ALGORITHM_VERSION
