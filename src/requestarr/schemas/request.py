"""
Pydantic schemas for request creation input.
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from requestarr.models.request import RequestStatus


class RequestItemSpec(BaseModel):
    """
    One provider unit of work to attach to a new request.

    Movie items carry neither season nor episode; episode items carry both.
    """

    provider: Literal["sonarr", "radarr"] = Field(..., description="Fulfillment provider")
    provider_id: int | None = Field(default=None, description="External series/movie id, if known")
    season: int | None = Field(default=None, ge=0)
    episode: int | None = Field(default=None, ge=0)
    status: RequestStatus | None = Field(
        default=None,
        description="Initial item status (defaults to the request status)",
    )

    @model_validator(mode="after")
    def check_episode_coordinates(self) -> "RequestItemSpec":
        """Season and episode are given together or not at all."""
        if (self.season is None) != (self.episode is None):
            raise ValueError("season and episode must both be set or both be omitted")
        return self
