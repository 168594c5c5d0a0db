from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# --- Auth ---

class Identity(BaseModel):
    """Decoded session token attached to an authenticated request."""

    id: int
    username: str
    role: str


class RegisterRequest(BaseModel):
    # Presence is checked by the service so the error reads like the others.
    username: str | None = Field(None, max_length=100)
    password: str | None = None
    nickname: str | None = Field(None, max_length=150)
    role: str | None = None


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    nickname: str | None
    role: str
    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    user: Identity


class MessageResponse(BaseModel):
    message: str


# --- Article ---

class ArticleWrite(BaseModel):
    """Body of create and update requests; every mutable field is overwritten."""

    title: str | None = Field(None, max_length=300)
    content: str | None = None
    summary: str | None = Field(None, max_length=500)
    tags: str | None = Field(None, max_length=500)  # comma separated, e.g. "python, redis"
    status: Literal["draft", "published"] | None = None
    author: str | None = Field(None, max_length=100)


class ArticleCreated(BaseModel):
    id: int
    message: str = "created"


class BulkDeleteRequest(BaseModel):
    ids: list[int] | None = None


# --- Draft generation ---

class DraftRequest(BaseModel):
    title: str | None = None
    keywords: str | None = None


class DraftResponse(BaseModel):
    summary: str
    content: str


# --- Health ---

class HealthResponse(BaseModel):
    status: str
