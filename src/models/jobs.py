"""Results shared by the collaborator adapters and job entrypoints."""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class GenerationResult(BaseModel):
    """Text produced by the language model plus its self-reported confidence."""

    text: str
    confidence_hint: float = Field(default=0.5, ge=0, le=1)


class EmailResult(BaseModel):
    success: bool
    error: Optional[str] = None


class JobResult(BaseModel):
    """Response body of every cron entrypoint."""

    success: bool = True
    counts: Dict[str, int] = Field(default_factory=dict)

    def bump(self, outcome: str, by: int = 1) -> None:
        self.counts[outcome] = self.counts.get(outcome, 0) + by
