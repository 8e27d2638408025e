"""Pydantic schemas for the prediction API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class CellPredictRequest(BaseModel):
    """Paired (user, item) positions to score."""

    user_indices: list[int] = Field(..., min_length=1, description="Zero-based user indices")
    item_indices: list[int] = Field(..., min_length=1, description="Zero-based item indices, paired with users")


class CellPrediction(BaseModel):
    user_index: int
    item_index: int
    predicted_rating: float


class CellPredictResponse(BaseModel):
    results: list[CellPrediction]


class UserPredictRequest(BaseModel):
    """Request one user's prediction row, optionally only the first `top` items."""

    user_index: int = Field(..., ge=0, description="Zero-based user index")
    top: Optional[int] = Field(None, ge=1, description="Only return the first `top` items")


class UserPredictResponse(BaseModel):
    user_index: int
    predicted_ratings: list[float]


class ModelInfo(BaseModel):
    status: str
    num_users: int
    num_items: int
    rank: int
    model_path: str
