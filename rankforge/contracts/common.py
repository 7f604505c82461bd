"""
Common data types and base models for RankForge.
All models use Pydantic V2 with strict type checking.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Side(str, Enum):
    """Team sides as they appear after normalisation."""

    CT = "CT"
    T = "T"

    @classmethod
    def from_log(cls, raw: str | None) -> "Side | None":
        """Normalise a team token from the log ("TERRORIST" -> T)."""
        if raw is None:
            return None
        token = raw.strip().upper()
        if token in ("TERRORIST", "T"):
            return cls.T
        if token == "CT":
            return cls.CT
        return None


class Coordinates(BaseModel):
    """3D world position captured with kill and attack lines."""

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    x: int = Field(..., description="X coordinate on the map")
    y: int = Field(..., description="Y coordinate on the map")
    z: int = Field(..., description="Z coordinate on the map")


class Player(BaseModel):
    """A player reference as it appears in one log line."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Display name at the time of the line")
    steam_id: str | None = Field(None, description="[U:1:N] identity, None for bots")
    side: Side | None = Field(None, description="Side the player was on")

    @property
    def is_bot(self) -> bool:
        return self.steam_id is None or self.steam_id == "BOT"

    @property
    def player_id(self) -> str | None:
        """Stable identity used for stats; bots have none."""
        return None if self.is_bot else self.steam_id


class BaseContract(BaseModel):
    """Base model for all data contracts with common configuration."""

    model_config = ConfigDict(
        # Validate data on assignment
        validate_assignment=True,
        # Forbid extra fields to ensure data integrity
        extra="forbid",
    )


def steam_id_from_account(account_id: str | int) -> str | None:
    """Build a [U:1:N] steam id from a bare account id ("0" means bot)."""
    value = str(account_id).strip()
    if not value or value == "0" or not value.isdigit():
        return None
    return f"[U:1:{value}]"
