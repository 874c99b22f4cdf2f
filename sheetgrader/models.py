"""
Typed grading model.

Everything the AI returns is squeezed into these records by
``services.grading_parser`` before anything else touches it.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RubricCriterion(BaseModel):
    """One scoring criterion supplied by the caller."""

    model_config = ConfigDict(frozen=True, extra="allow")

    criterion_id: str = ""
    name: str = ""
    max_points: float = 0
    weight: float = 0


class StudentInfo(BaseModel):
    """Student identity as read off the sheet. Unknown fields stay None."""

    name: Optional[str] = None
    id: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="className")

    model_config = ConfigDict(populate_by_name=True)


class ScoredItem(BaseModel):
    criterion_id: str = ""
    name: str = ""
    max_points: float = 0
    weight: float = 0
    raw_score: float = 0
    weighted_score: float = 0
    justification: str = ""
    flags: List[str] = Field(default_factory=list)


class GradingResult(BaseModel):
    student: StudentInfo = Field(default_factory=StudentInfo)
    items: List[ScoredItem] = Field(default_factory=list)
    final_score_100: int = 0
    notes: Optional[str] = None


class ParseOutcome(BaseModel):
    """Parser output. Always carries a usable result.

    ``malformed`` is set when the raw text was not a JSON object at all;
    ``issues`` lists each default that had to be substituted.
    """

    result: GradingResult
    malformed: bool = False
    issues: List[str] = Field(default_factory=list)

    @property
    def defaults_substituted(self) -> bool:
        return self.malformed or bool(self.issues)
