"""Pydantic request bodies for API endpoints."""

from pydantic import BaseModel, Field


class RevealBody(BaseModel):
    ticks: int = Field(default=1, ge=1, le=10000)


class AttemptBody(BaseModel):
    text: str


class ChooseBody(BaseModel):
    option: str


class CompanionBody(BaseModel):
    joined: bool
