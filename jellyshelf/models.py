"""Pydantic models describing media server payloads and catalog views."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_pascal

from .utils import (
    TICKS_PER_SECOND,
    date_part,
    format_bytes,
    format_seconds,
    parse_timestamp_millis,
    render_template,
    strip_markup,
)

PAGE_SIZE = 20
DEFAULT_EPISODE_TEMPLATE = "{number} - {title}"


class ItemType(str, Enum):
    """Kinds of server-side entities the catalog distinguishes."""

    BOX_SET = "BoxSet"
    MOVIE = "Movie"
    SEASON = "Season"
    SERIES = "Series"
    EPISODE = "Episode"
    OTHER = "Other"

    @classmethod
    def from_value(cls, value: object) -> "ItemType":
        """Match a server type name case-insensitively, defaulting to ``OTHER``."""

        if isinstance(value, ItemType):
            return value
        text = str(value or "").strip().casefold()
        for member in cls:
            if member.value.casefold() == text:
                return member
        return cls.OTHER


class EntryStatus(str, Enum):
    """Publication status shown for a catalog entry."""

    UNKNOWN = "unknown"
    ONGOING = "ongoing"
    COMPLETED = "completed"

    @classmethod
    def from_server(cls, value: str | None) -> "EntryStatus":
        lowered = (value or "").lower()
        if lowered == "ended":
            return cls.COMPLETED
        if lowered == "continuing":
            return cls.ONGOING
        return cls.UNKNOWN


class WireModel(BaseModel):
    """Base for models decoded from PascalCase server JSON."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class ImageTags(WireModel):
    primary: str | None = None


class Studio(WireModel):
    name: str


class MediaSource(WireModel):
    id: str | None = None
    size: int | None = None


class CatalogItem(WireModel):
    """A server-side item (movie, series, season, episode or box set)."""

    id: str
    name: str
    type: ItemType = ItemType.OTHER
    location_type: str | None = None
    image_tags: ImageTags = Field(default_factory=ImageTags)
    collection_type: str | None = None
    series_id: str | None = None
    series_name: str | None = None
    season_name: str | None = None
    series_primary_image_tag: str | None = None
    status: str | None = None
    overview: str | None = None
    genres: list[str] | None = None
    studios: list[Studio] | None = None
    original_title: str | None = None
    sort_name: str | None = None
    index_number: int | None = None
    premiere_date: str | None = None
    date_created: str | None = None
    run_time_ticks: int | None = None
    media_sources: list[MediaSource] | None = None
    official_rating: str | None = None
    community_rating: float | None = None
    critic_rating: float | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> ItemType:
        return ItemType.from_value(value)

    @property
    def primary_image_tag(self) -> str | None:
        return self.image_tags.primary

    @property
    def is_virtual(self) -> bool:
        return self.location_type == "Virtual"

    @property
    def first_media_source(self) -> MediaSource | None:
        if not self.media_sources:
            return None
        return self.media_sources[0]

    @property
    def runtime_seconds(self) -> int | None:
        if self.run_time_ticks is None:
            return None
        return self.run_time_ticks // TICKS_PER_SECOND

    def ref_fragment(self) -> str | None:
        """Return the type discriminator stored in the item reference."""

        if self.type is ItemType.SEASON:
            return f"seriesId,{self.series_id}"
        if self.type is ItemType.MOVIE:
            return "movie"
        if self.type is ItemType.BOX_SET:
            return "boxSet"
        if self.type is ItemType.SERIES:
            return "series"
        return None

    def build_ref(self, base_url: str, user_id: str) -> str:
        """Return the canonical item URL carrying the type discriminator."""

        return ItemRef.for_item(base_url, user_id, self.id, self.ref_fragment()).encode()

    def build_description(self) -> str:
        """Overview without markup, followed by one line per rating."""

        parts: list[str] = []
        if self.overview is not None:
            parts.append(strip_markup(self.overview))
            parts.append("\n\n")
        if self.official_rating is not None:
            parts.append(f"Content Rating: {self.official_rating}\n")
        if self.community_rating is not None:
            parts.append(f"Star ({self.community_rating}): Average audience score\n")
        if self.critic_rating is not None:
            parts.append(f"Tomato ({self.critic_rating}): Critic approval percentage\n")
        return "".join(parts).strip()

    def to_catalog_entry(self, base_url: str, user_id: str) -> "CatalogEntry":
        """Project the item into the catalog listing view."""

        title = self.name
        thumbnail = (
            build_image_url(base_url, self.id, self.primary_image_tag)
            if self.primary_image_tag
            else None
        )

        if self.type is ItemType.MOVIE:
            status = EntryStatus.COMPLETED
        else:
            status = EntryStatus.from_server(self.status)

        if self.type is ItemType.SEASON:
            series_thumbnail = (
                build_image_url(base_url, self.series_id, self.series_primary_image_tag)
                if self.series_id and self.series_primary_image_tag
                else None
            )
            if self.is_virtual:
                title = self.series_name or "Season"
                if self.series_id:
                    thumbnail = series_thumbnail
            else:
                title = f"{self.series_name or ''} {self.name}".strip()
            if self.primary_image_tag is None and self.series_id:
                thumbnail = series_thumbnail

        return CatalogEntry(
            url=self.build_ref(base_url, user_id),
            title=title,
            thumbnail_url=thumbnail,
            description=self.build_description(),
            genre=", ".join(self.genres) if self.genres is not None else None,
            author=(
                ", ".join(studio.name for studio in self.studios)
                if self.studios is not None
                else None
            ),
            status=status,
        )

    def template_values(self, prefix: str = "") -> dict[str, str]:
        """Return the substitution table for episode name templates."""

        source = self.first_media_source
        size_bytes = source.size if source is not None else None
        runtime = self.runtime_seconds
        title = prefix if self.type is ItemType.MOVIE else f"{prefix}{self.name}"
        return {
            "title": title,
            "originalTitle": self.original_title or "",
            "sortTitle": self.sort_name or "",
            "type": self.type.value,
            "typeShort": self.type.value.replace("Episode", "Ep."),
            "seriesTitle": self.series_name or "",
            "seasonTitle": self.season_name or "",
            "number": str(self.index_number) if self.index_number is not None else "",
            "createdDate": date_part(self.date_created),
            "releaseDate": date_part(self.premiere_date),
            "size": format_bytes(size_bytes) if size_bytes is not None else "",
            "sizeBytes": str(size_bytes) if size_bytes is not None else "",
            "runtime": format_seconds(runtime) if runtime is not None else "",
            "runtimeS": str(runtime) if runtime is not None else "",
        }

    def to_episode(
        self,
        base_url: str,
        user_id: str,
        *,
        prefix: str = "",
        details: Iterable[str] = (),
        template: str = DEFAULT_EPISODE_TEMPLATE,
    ) -> "Episode":
        """Project the item into the episode view used for playback lists."""

        values = self.template_values(prefix)
        detail_flags = set(details)
        extra_info: list[str] = []
        if "Overview" in detail_flags and self.overview and self.type is ItemType.EPISODE:
            extra_info.append(strip_markup(self.overview).strip())
        if "Size" in detail_flags and values["size"]:
            extra_info.append(values["size"])
        if "Runtime" in detail_flags and values["runtime"]:
            extra_info.append(values["runtime"])

        if self.type is ItemType.MOVIE:
            number = 1.0
        elif self.index_number is not None:
            number = float(self.index_number)
        else:
            number = -1.0

        return Episode(
            name=render_template(template, values),
            url=ItemRef.for_item(base_url, user_id, self.id).encode(),
            episode_number=number,
            date_upload=parse_timestamp_millis(self.premiere_date),
            scanlator=" • ".join(extra_info),
        )


class ItemList(WireModel):
    """Paged collection payload returned by listing endpoints."""

    items: list[CatalogItem] = Field(default_factory=list)
    total_record_count: int = 0


class LoginSessionInfo(WireModel):
    user_id: str


class LoginResult(WireModel):
    """Body of a successful ``AuthenticateByName`` response."""

    access_token: str
    session_info: LoginSessionInfo


class CatalogEntry(BaseModel):
    """Catalog view of an item as shown in browse listings."""

    url: str
    title: str
    thumbnail_url: str | None = None
    description: str = ""
    genre: str | None = None
    author: str | None = None
    status: EntryStatus = EntryStatus.UNKNOWN


class Episode(BaseModel):
    """Playable entry for a series, season or single movie."""

    name: str
    url: str
    episode_number: float = -1.0
    date_upload: int = 0
    scanlator: str = ""


class Page(BaseModel):
    """One bounded slice of a listing."""

    items: list[CatalogItem] = Field(default_factory=list, exclude=True)
    entries: list[CatalogEntry] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_next_page(self) -> bool:
        return self.page * PAGE_SIZE < self.total_count


class FilterKind(str, Enum):
    CATEGORY = "category"
    GENRE = "genre"


class FilterOption(BaseModel):
    """A (label, value) pair used by the category and genre pickers."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    label: str = Field(alias="name")
    value: str = Field(alias="id")


class SortField(str, Enum):
    NAME = "Name"
    DATE_ADDED = "DateAdded"
    PREMIERE_DATE = "PremiereDate"

    @property
    def server_key(self) -> str:
        return SORT_KEYS[self]

    @property
    def label(self) -> str:
        return SORT_LABELS[self]


SORT_KEYS: dict[SortField, str] = {
    SortField.NAME: "SortName",
    SortField.DATE_ADDED: "DateCreated",
    SortField.PREMIERE_DATE: "ProductionYear",
}
SORT_LABELS: dict[SortField, str] = {
    SortField.NAME: "Name",
    SortField.DATE_ADDED: "Date Added",
    SortField.PREMIERE_DATE: "Premiere Date",
}


class SortSelection(BaseModel):
    field: SortField = SortField.NAME
    ascending: bool = False


class FilterSelections(BaseModel):
    """User choices applied to a search listing."""

    category: str = ""
    sort: SortSelection | None = None
    genre_ids: list[str] = Field(default_factory=list)

    @field_validator("genre_ids", mode="before")
    @classmethod
    def _split_genre_ids(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class FilterList(BaseModel):
    """All filter options offered to a browsing UI."""

    categories: list[FilterOption] = Field(default_factory=list)
    sort_fields: list[SortField] = Field(default_factory=lambda: list(SortField))
    genres: list[FilterOption] = Field(default_factory=list)


@dataclass(slots=True)
class PlaybackSource:
    """A direct stream URL together with the headers needed to fetch it."""

    url: str
    quality: str = "Source"
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ItemRef:
    """Canonical item URL plus the type discriminator kept in its fragment."""

    url: str
    item_id: str
    fragment: str = ""

    @classmethod
    def for_item(
        cls, base_url: str, user_id: str, item_id: str, fragment: str | None = None
    ) -> "ItemRef":
        url = (
            f"{base_url.rstrip('/')}/Users/{quote(user_id, safe='')}"
            f"/Items/{quote(item_id, safe='')}"
        )
        return cls(url=url, item_id=item_id, fragment=fragment or "")

    @classmethod
    def parse(cls, ref: str) -> "ItemRef":
        """Split a stored reference into URL, item id and discriminator."""

        parts = urlsplit(ref)
        segments = [segment for segment in parts.path.split("/") if segment]
        if not parts.scheme or not parts.netloc or not segments:
            raise ValueError(f"Not an item reference: {ref!r}")
        url = urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))
        return cls(url=url, item_id=unquote(segments[-1]), fragment=parts.fragment)

    def encode(self) -> str:
        if not self.fragment:
            return self.url
        return f"{self.url}#{self.fragment}"

    @property
    def is_series(self) -> bool:
        return self.fragment == "series"

    @property
    def parent_series_id(self) -> str | None:
        """Series id recorded for season references."""

        prefix, _, series_id = self.fragment.partition(",")
        if prefix != "seriesId" or not series_id or series_id == "None":
            return None
        return series_id


def build_image_url(base_url: str, item_id: str, tag: str) -> str:
    """Return the primary image URL for an item and image tag."""

    return (
        f"{base_url.rstrip('/')}/Items/{quote(item_id, safe='')}/Images/Primary"
        f"?tag={quote(tag, safe='')}"
    )
