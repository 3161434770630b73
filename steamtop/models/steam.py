from enum import IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, RootModel


class AppCategory(IntEnum):
    """Store category ids that map onto game capabilities."""

    MULTIPLAYER = 1
    SINGLEPLAYER = 2
    ONLINE_MULTIPLAYER = 36
    LOCAL_MULTIPLAYER = 37


class Category(BaseModel):
    id: int = Field(..., description="Store category ID")
    description: str = Field("", description="Human readable category name")


class AppData(BaseModel):
    name: str = Field("", description="Game name")
    categories: List[Category] = Field(default_factory=list, description="Store categories")


class AppInfo(BaseModel):
    """One entry of the appdetails response."""

    success: bool = Field(False, description="Whether the store knows this app")
    data: AppData = Field(default_factory=AppData, description="App payload, absent on failure")

    @property
    def name(self) -> str:
        return self.data.name

    def has_category(self, category: int) -> bool:
        for item in self.data.categories:
            if item.id == category:
                return True
        return False

    def is_singleplayer(self) -> bool:
        return self.has_category(AppCategory.SINGLEPLAYER)

    def is_multiplayer(self) -> bool:
        return self.has_category(AppCategory.MULTIPLAYER)

    def is_online_multiplayer(self) -> bool:
        return self.has_category(AppCategory.ONLINE_MULTIPLAYER)

    def is_local_multiplayer(self) -> bool:
        return self.has_category(AppCategory.LOCAL_MULTIPLAYER)


class AppInfoEnvelope(RootModel[Optional[Dict[str, AppInfo]]]):
    """
    The appdetails response, keyed by the decimal app id.

    Steam returns ``null`` or ``{}`` instead of a payload when it throttles
    the caller, so both decode fine and are reported by ``is_empty``.
    """

    def is_empty(self) -> bool:
        return not self.root

    def get(self, appid: int) -> Optional[AppInfo]:
        if not self.root:
            return None
        return self.root.get(str(appid))


class PlayerCount(BaseModel):
    # omitted by Steam for apps without stats
    player_count: int = Field(0, ge=0, description="Current concurrent players")


class NumberOfPlayers(BaseModel):
    response: PlayerCount = Field(..., description="GetNumberOfCurrentPlayers payload")
