from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Settings:
    multicast_address: str = "239.255.255.250"
    multicast_port: int = 1900
    # the local port is always ephemeral, only the interface is configurable
    bind_address: str = "0.0.0.0"
    multicast_ttl: int = 12
    multicast_loopback: bool = True

    search_target: str = "ssdp:all"
    search_mx: int = 3
    search_interval: float | None = 30
    refresh_interval: float = 5

    # some devices send announcements without the NOTIFY request line
    require_notify: bool = False

    http_timeout: float = 10
    browse_page_size: int = 30
    browse_filter: str = "dc:title,upnp:class,upnp:album,upnp:artist,upnp:albumArtURI,res"
    user_agent: str = "dlnabrowser/1.0 UPnP/1.0"

    location_urls: list[str] = field(default_factory=list)

    @property
    def multicast_group(self) -> tuple[str, int]:
        return self.multicast_address, self.multicast_port


settings = Settings()
