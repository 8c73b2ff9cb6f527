"""Domain records shared by the services and the display layer.

All models are frozen; state changes produce new instances via
``model_copy(update=...)``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sharectl.domain.ids import CellId, cell_id_from_string, decode_hash, encode_hash


class Network(BaseModel):
    """A sharing network: one cloned cell plus its local display metadata.

    ``is_active`` is derived by the session from the selector and is
    never persisted.
    """

    model_config = {"frozen": True}

    id: str
    name: str
    passphrase: str = ""
    joined_at: int
    is_active: bool = False

    @property
    def cell_id(self) -> CellId:
        return cell_id_from_string(self.id)


class NetworkRecord(BaseModel):
    """Locally persisted mirror of a network's display metadata."""

    model_config = {"frozen": True}

    id: str
    name: str
    passphrase: str = ""
    joined_at: int

    @classmethod
    def from_network(cls, network: Network) -> NetworkRecord:
        return cls(
            id=network.id,
            name=network.name,
            passphrase=network.passphrase,
            joined_at=network.joined_at,
        )


class ShareItem(BaseModel):
    """A shared link as shown in the feed."""

    model_config = {"frozen": True}

    id: str
    url: str
    title: str
    description: str | None = None
    selection: str | None = None
    favicon: str | None = None
    thumbnail: str | None = None
    shared_at: float
    shared_by: str
    tags: list[str] = Field(default_factory=list)

    @property
    def action_hash(self) -> bytes:
        return decode_hash(self.id)


def to_share_item(info: dict[str, Any]) -> ShareItem:
    """Convert a conductor ``ShareItemInfo`` payload into a :class:`ShareItem`.

    Conductor timestamps are microseconds; the display layer uses
    milliseconds.
    """
    entry = info["share_item"]
    return ShareItem(
        id=encode_hash(info["action_hash"]),
        url=entry["url"],
        title=entry["title"],
        description=entry.get("description"),
        selection=entry.get("selection"),
        favicon=entry.get("favicon"),
        thumbnail=entry.get("thumbnail"),
        shared_at=int(info["created_at"]) / 1000,
        shared_by=encode_hash(info["author"]),
        tags=list(entry.get("tags") or []),
    )


def to_share_payload(
    url: str,
    title: str,
    *,
    description: str | None = None,
    selection: str | None = None,
    favicon: str | None = None,
    thumbnail: str | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Build the entry payload the ``create_share_item`` zome call expects."""
    return {
        "url": url,
        "title": title,
        "description": description,
        "selection": selection,
        "favicon": favicon,
        "thumbnail": thumbnail,
        "tags": list(tags or []),
    }


class Feed(BaseModel):
    """A curated collection of shares inside one network.

    Feeds are created by one agent (listed under "my feeds") and can be
    opened to other members. ``stewards`` and members are agent keys in
    base64.
    """

    model_config = {"frozen": True}

    id: str
    name: str
    description: str | None = None
    stewards: list[str] = Field(default_factory=list)
    is_public: bool = False
    created_at: float

    @property
    def action_hash(self) -> bytes:
        return decode_hash(self.id)


def to_feed(info: dict[str, Any]) -> Feed:
    """Convert a conductor ``FeedInfo`` payload into a :class:`Feed`."""
    entry = info["feed"]
    return Feed(
        id=encode_hash(info["action_hash"]),
        name=entry["name"],
        description=entry.get("description"),
        stewards=[encode_hash(key) for key in entry.get("stewards") or []],
        is_public=bool(entry.get("is_public")),
        created_at=int(info["created_at"]) / 1000,
    )


def to_feed_payload(
    name: str,
    stewards: list[bytes],
    *,
    description: str | None = None,
    is_public: bool = False,
) -> dict[str, Any]:
    """Build the entry payload the ``create_feed`` zome call expects."""
    return {
        "name": name,
        "description": description,
        "stewards": list(stewards),
        "is_public": is_public,
    }


class ShareView(BaseModel):
    """What the feed currently displays for the selected network."""

    model_config = {"frozen": True}

    network_id: str | None = None
    shares: list[ShareItem] = Field(default_factory=list)
    loading: bool = False
    error: str | None = None
    has_network: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.loading and self.has_network and not self.shares


class SessionState(BaseModel):
    """Everything the display layer may read. Only the session mutates it."""

    model_config = {"frozen": True}

    networks: list[Network] = Field(default_factory=list)
    active_id: str | None = None
    loading: bool = False
    error: str | None = None
    view: ShareView = Field(default_factory=ShareView)

    @property
    def active_network(self) -> Network | None:
        return next((n for n in self.networks if n.id == self.active_id), None)

    def find(self, network_id: str) -> Network | None:
        return next((n for n in self.networks if n.id == network_id), None)
