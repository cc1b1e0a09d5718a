# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

Subsystem-private models live next to their subsystem (cache/models.py,
audit/models.py, batch/models.py); everything that crosses a module
boundary is defined here.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from paravault.core.errors import ErrorKind, user_message

MAX_TAGS = 5
MAX_RELATED_NOTES = 5


# === TAXONOMY ===


class Category(str, Enum):
    """The four top-level buckets of the vault."""

    PROJECT = "project"
    AREA = "area"
    RESOURCE = "resource"
    ARCHIVE = "archive"

    @property
    def folder_name(self) -> str:
        return _FOLDER_NAMES[self]

    @classmethod
    def from_folder(cls, name: str) -> Category | None:
        """Category for a top-level folder name such as ``2_Area``."""
        for category, folder in _FOLDER_NAMES.items():
            if folder == name:
                return category
        return None

    @classmethod
    def from_path(cls, path: str) -> Category | None:
        """First category folder found among the segments of *path*."""
        for segment in path.replace("\\", "/").split("/"):
            category = cls.from_folder(segment)
            if category is not None:
                return category
        return None


_FOLDER_NAMES: dict[Category, str] = {
    Category.PROJECT: "1_Project",
    Category.AREA: "2_Area",
    Category.RESOURCE: "3_Resource",
    Category.ARCHIVE: "4_Archive",
}


class FileStatus(str, Enum):
    """Change status of a file against its recorded fingerprint."""

    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    NEW = "new"


# === CLASSIFICATION ===


class RelatedNote(BaseModel):
    """A note the classifier believes is related, with a short reason."""

    name: str
    context: str = ""


class ClassificationInput(BaseModel):
    """One file entering a classification batch."""

    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    file_name: str
    extracted_text: str
    preview_text: str


class ClassificationResult(BaseModel):
    """Category and destination proposed for one file."""

    category: Category
    tags: list[str] = Field(default_factory=list)
    summary: str = ""
    destination_folder: str = ""
    project: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    related_notes: list[RelatedNote] = Field(default_factory=list)
    # Raw project name from the classifier when it matched no existing project.
    suggested_project: str | None = None

    @field_validator("tags")
    @classmethod
    def _ordered_unique_tags(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen[:MAX_TAGS]

    @field_validator("related_notes")
    @classmethod
    def _cap_related_notes(cls, v: list[RelatedNote]) -> list[RelatedNote]:
        return v[:MAX_RELATED_NOTES]


class ClassificationError(BaseModel):
    """User-facing failure attached to a file that could not be classified."""

    kind: ErrorKind
    message: str

    @classmethod
    def of(cls, kind: ErrorKind) -> ClassificationError:
        return cls(kind=kind, message=user_message(kind))


class DispatchOutcome(BaseModel):
    """Result slot for one input of a dispatch call, in input order."""

    index: int
    input: ClassificationInput
    result: ClassificationResult | None = None
    error: ClassificationError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


# === PLACEMENT ===


class ConfirmationReason(str, Enum):
    """Why a file was held back for a human decision."""

    LOW_CONFIDENCE = "low_confidence"
    UNMATCHED_PROJECT = "unmatched_project"
    INDEX_NAME_CONFLICT = "index_name_conflict"
    EXISTING_NAME_CONFLICT = "existing_name_conflict"
    MISCLASSIFIED = "misclassified"


class AutoPlace(BaseModel):
    """File can be placed without asking."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["auto_place"] = "auto_place"
    result: ClassificationResult


class NeedsConfirmation(BaseModel):
    """File needs a human to pick one of the alternatives."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["needs_confirmation"] = "needs_confirmation"
    reason: ConfirmationReason
    alternatives: list[ClassificationResult]


class Rejected(BaseModel):
    """File could not be classified or placed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["rejected"] = "rejected"
    error: ClassificationError


PlacementOutcome = Annotated[
    Union[AutoPlace, NeedsConfirmation, Rejected],
    Field(discriminator="kind"),
]
