"""
Live TV channel data models.
Maps to the tv_channels.json schema.
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Channel(BaseModel):
    """Live TV channel as listed in tv_channels.json."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: str
    name: str
    description: str = ""
    logo: Optional[str] = None
    poster: Optional[str] = None
    background: Optional[str] = None
    category: Union[str, list[str], None] = None
    categories: Optional[list[str]] = None

    # Static links in priority order
    static_url: Optional[str] = Field(None, alias="staticUrl")
    static_url2: Optional[str] = Field(None, alias="staticUrl2")  # alternate quality
    static_url_d: Optional[str] = Field(None, alias="staticUrlD")  # tertiary, TV proxy

    free_to_air: bool = Field(False, alias="freeToAir")

    # Names to look up in the channel link cache
    vavoo_names: list[str] = Field(default_factory=list, alias="vavooNames")

    @property
    def lookup_names(self) -> list[str]:
        return self.vavoo_names or [self.name]


class ChannelLinkSnapshot(BaseModel):
    """On-disk shape of the channel link cache."""

    timestamp: int = 0  # ms since epoch of the last refresh
    links: dict[str, Union[str, list[str]]] = Field(default_factory=dict)
