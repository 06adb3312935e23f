"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field

from drifter.models import MBTI


class LoginBody(BaseModel):
    nickname: str
    code: str


class CreateCharacter(BaseModel):
    name: str
    age: int = Field(default=25, ge=0, le=150)
    gender: str = ""
    keywords: list[str] = Field(default_factory=list)
    mbti: MBTI = "ISTJ"
    image: str = ""
