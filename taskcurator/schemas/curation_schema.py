# taskcurator/schemas/curation_schema.py
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

SuggestionType = Literal["priority", "risk", "optimization", "general"]


class Suggestion(BaseModel):
    type: SuggestionType = "general"
    task_id: Optional[int] = None
    message: str = Field(min_length=1)

    @field_validator("type", mode="before")
    def normalize_type(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in ("priority", "risk", "optimization"):
                return "general"
        return value


class CurationResult(BaseModel):
    """Shape every curation pass produces, whether AI or fallback."""

    suggestions: list[Suggestion] = Field(default_factory=list)
    summary: str = ""
    focus_areas: list[str] = Field(default_factory=list)
    problems: list[str] = Field(default_factory=list)
    recommended_tasks: list[int] = Field(default_factory=list)
    ai_generated: bool = False

    def ranked_task_ids(self) -> list[int]:
        """Recommended tasks first, then priority/risk targets, without repeats."""
        ranked = []
        candidates = list(self.recommended_tasks) + [
            s.task_id for s in self.suggestions
            if s.type in ("priority", "risk") and s.task_id is not None
        ]
        for task_id in candidates:
            if task_id not in ranked:
                ranked.append(task_id)
        return ranked

