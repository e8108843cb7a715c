from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SuggestedWineCandidate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    wine_id: str = Field(min_length=1)
    vintage: str | None = Field(default=None, max_length=32)


class SuggestionCandidate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    sub_appellation_id: str = Field(min_length=1)
    reason: str | None = None
    wines: list[SuggestedWineCandidate] = Field(default_factory=list)


class SipSessionDetails(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=256)
    description: str | None = Field(default=None, max_length=2048)
    scheduled_at: int | None = None
    date: int | None = None
    location: str = Field(default="", max_length=256)
    food_suggestion: str | None = Field(default=None, max_length=4096)
