"""
Pydantic schemas for the relay's HTTP surface.

Field names follow the storefront theme's JavaScript (camelCase for the
upload endpoints, snake_case for leaderboard data).
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: Literal["ok"]


class UploadUrlRequest(BaseModel):
    # Optional so that a missing field yields our 400 message, not a 422.
    filename: Optional[str] = None
    contentType: Optional[str] = None


class UploadUrlResponse(BaseModel):
    uploadUrl: str
    publicUrl: str


class UploadResponse(BaseModel):
    success: bool
    publicUrl: str


class DeleteResponse(BaseModel):
    success: bool
    message: str


class CreatedMetaobject(BaseModel):
    id: str
    handle: str


class SubmitResponse(BaseModel):
    success: bool
    metaobject: CreatedMetaobject


class LeaderboardByTypeResponse(BaseModel):
    success: bool
    leaderboard_type: str
    count: int
    entries: List[Dict[str, Any]]


class LeaderboardByNameResponse(BaseModel):
    success: bool
    leaderboard_name: str
    count: int
    entries: List[Dict[str, Any]]


class Submission(BaseModel):
    id: str
    handle: str
    fields: Dict[str, Optional[str]]


class UpdateSubmissionResponse(BaseModel):
    success: bool
    submission: Submission


class VerifySubmissionResponse(BaseModel):
    success: bool
    verified: bool
    submission: Submission
