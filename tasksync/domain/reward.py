"""Reward configuration domain models."""

from pydantic import BaseModel, Field


class RewardTier(BaseModel):
    """Points threshold mapped to a described reward."""

    id: str = Field(..., description="Tier ID")
    name: str = Field(default="", description="Tier display name (e.g., 'Gold Champion')")
    points: int = Field(..., ge=0, description="Points threshold")
    reward: str = Field(..., description="Reward description")
    description: str | None = Field(default=None, description="Optional longer description")
