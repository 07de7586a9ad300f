"""Vote and score models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from swipescore.core.errors import TransientStorageError, ValidationError

Choice = Literal["left", "right"]
VersionToken = str


class ItemScore(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    left: int = Field(default=0, ge=0)
    right: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.left + self.right


class Vote(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: str = Field(..., min_length=1, examples=["cats-vs-dogs"])
    choice: Choice = Field(..., examples=["left"])


class VoteBatch(BaseModel):
    """One client session's votes, applied to the table as a single unit."""

    model_config = ConfigDict(frozen=True)

    votes: list[Vote] = Field(..., min_length=1)


ScoreTable = dict[str, ItemScore]


@dataclass(frozen=True)
class Snapshot:
    """Result of a versioned read: the table plus the revision it came from."""

    table: ScoreTable = field(default_factory=dict)
    version: Optional[VersionToken] = None


def parse_vote_batch(body: Any, *, max_votes: int = 0) -> VoteBatch:
    """Validate a decoded ``POST /scores`` body into a VoteBatch."""
    if not isinstance(body, dict) or "votes" not in body or body["votes"] is None:
        raise ValidationError("votes is required")
    votes = body["votes"]
    if not isinstance(votes, list):
        raise ValidationError("votes must be an array")
    if not votes:
        raise ValidationError("votes must not be empty")
    if max_votes > 0 and len(votes) > max_votes:
        raise ValidationError(f"votes exceeds the limit of {max_votes} per batch")
    try:
        return VoteBatch.model_validate({"votes": votes})
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"invalid vote at {location}: {first.get('msg', 'malformed')}") from exc


def table_to_document(table: ScoreTable) -> dict[str, dict[str, int]]:
    return {item: {"left": score.left, "right": score.right} for item, score in table.items()}


def table_from_document(document: Any) -> ScoreTable:
    """Decode a stored document; a malformed record is a storage failure."""
    if not isinstance(document, dict):
        raise TransientStorageError("stored score record is not an object")
    table: ScoreTable = {}
    for item, raw in document.items():
        if not isinstance(item, str) or not item:
            raise TransientStorageError("stored score record has an empty item id")
        try:
            table[item] = ItemScore.model_validate(raw)
        except PydanticValidationError as exc:
            raise TransientStorageError(f"stored score for item={item!r} is malformed") from exc
    return table
