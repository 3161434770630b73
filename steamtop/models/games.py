from datetime import datetime

from pydantic import BaseModel, Field


class Game(BaseModel):
    id: int = Field(..., description="Store-assigned row ID")
    app_id: int = Field(..., description="Steam application ID")
    name: str = Field(..., description="Game name")
    singleplayer: bool = False
    multiplayer: bool = False
    online_multiplayer: bool = False
    local_multiplayer: bool = False
    last_update: datetime = Field(..., description="Last successful player count refresh (UTC)")
    players: int = Field(0, ge=0, description="Latest concurrent players")


class RankedGame(BaseModel):
    app_id: int = Field(..., description="Steam application ID")
    name: str = Field(..., description="Game name")
    players: int = Field(..., description="Latest concurrent players")
    rank: int = Field(..., description="1-based position in the top list")
