"""Feed record parsing

Each element of the feed array is classified exactly once, here, into either
an ``AdRecord`` or a ``TrackRecord``. Downstream code never inspects raw
dictionaries.

Field values in the feed are loosely typed (numbers arrive as strings and
vice versa, ids arrive as plain strings or as ``{"$oid": ...}`` objects), so
optional fields are coerced leniently: a value that cannot be coerced is
treated as absent rather than failing the whole record.
"""
from typing import Annotated, Any, Literal, Optional, Tuple, Union
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
import logging

from radiofeed.exceptions import SchemaError
from radiofeed.models.ad import AD_ARTIST, AD_TITLE, AdType

logger = logging.getLogger(__name__)


def extract_id(value: Any) -> Optional[str]:
    """
    Normalize an upstream id to a plain string

    Args:
        value: ``"abc"``, ``{"$oid": "abc"}`` or anything else

    Returns:
        The id string, or None when the value carries no usable id
    """
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        oid = value.get("$oid")
        if isinstance(oid, str) and oid:
            return oid
    return None


def _lenient_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _lenient_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _lenient_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _lenient_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no", ""):
            return False
    return None


FeedId = Annotated[Optional[str], BeforeValidator(extract_id)]
Text = Annotated[Optional[str], BeforeValidator(_lenient_str)]
RequiredText = Annotated[str, BeforeValidator(_lenient_str), Field(min_length=1)]
Number = Annotated[Optional[float], BeforeValidator(_lenient_float)]
Integer = Annotated[Optional[int], BeforeValidator(_lenient_int)]
Flag = Annotated[Optional[bool], BeforeValidator(_lenient_bool)]


class _FeedModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class AlbumRecord(_FeedModel):
    """Album sub-object of a track record"""
    original_id: FeedId = Field(default=None, alias="_id")
    title: Text = None
    asin: Text = None
    label: Text = None
    year: Text = None
    cdcover: Text = None
    buyalbum: Text = None
    itunes: Text = None
    itunes_id: Integer = None
    created_by: Text = None
    approved_by: Text = None
    pending_id: Text = None
    job: FeedId = None


class ArtistRecord(_FeedModel):
    """Artist sub-object of a track record"""
    original_id: FeedId = Field(default=None, alias="_id")
    artistdisplay: Text = None
    artistcat: Text = None
    created_by: Text = None
    approved_by: Text = None
    job: FeedId = None
    oldid: Integer = None


class ComposerRecord(_FeedModel):
    """Composer sub-object of a track record"""
    original_id: FeedId = Field(default=None, alias="_id")
    display: Text = None
    value: Text = None
    cat: Text = None
    created_by: Text = None
    approved_by: Text = None
    job: FeedId = None
    oldid: Integer = None


def _sub_record(model):
    """Build a validator that parses a nested object, or yields None when it is unusable."""

    def parse(value: Any):
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning(f"Ignoring malformed {model.__name__}: expected object, got {type(value).__name__}")
            return None
        try:
            return model.model_validate(value)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed {model.__name__}: {e.error_count()} invalid field(s)")
            return None

    return BeforeValidator(parse)


class AdRecord(_FeedModel):
    """Ad slot record (``runspot`` / ``sweeper``)"""
    kind: Literal["ad"] = "ad"
    ad_type: Optional[AdType] = None
    ad_source: Text = None
    fn: Text = None
    fn_as: Text = None
    fn_ar: Text = None


class TrackRecord(_FeedModel):
    """Track record with its nested album, artist and composer"""
    kind: Literal["track"] = "track"
    feed_id: FeedId = Field(default=None, alias="_id")
    feed_alt_id: FeedId = Field(default=None, alias="id")
    track_artist: RequiredText
    title: RequiredText
    fn: Text = None
    primary: Text = None
    secondary: Text = None
    holiday: Flag = None
    duration: Number = None
    unedited_duration: Number = None
    calculated_weight: Number = Field(default=None, alias="calculatedWeight")
    listfrom: Text = None
    created_by: Text = None
    approved_by: Text = None
    job: FeedId = None
    oldid: Integer = None
    album: Annotated[Optional[AlbumRecord], _sub_record(AlbumRecord)] = None
    artist: Annotated[Optional[ArtistRecord], _sub_record(ArtistRecord)] = None
    composer: Annotated[Optional[ComposerRecord], _sub_record(ComposerRecord)] = None

    @property
    def original_id(self) -> Optional[str]:
        """Upstream track id: ``_id``, falling back to ``id``"""
        return self.feed_id or self.feed_alt_id

    @property
    def fingerprint(self) -> Tuple[str, str, Optional[str]]:
        """Content key used when no upstream id matches"""
        return (self.track_artist, self.title, self.fn)


FeedRecord = Union[AdRecord, TrackRecord]


def is_ad(item: dict) -> bool:
    """An ad slot is marked by the sentinel artist/title pair."""
    return item.get("track_artist") == AD_ARTIST and item.get("title") == AD_TITLE


def parse_record(item: Any) -> FeedRecord:
    """
    Classify and parse one feed element

    Args:
        item: Raw JSON value from the feed array

    Returns:
        AdRecord or TrackRecord

    Raises:
        SchemaError: If the element is not an object or misses mandatory fields
    """
    if not isinstance(item, dict):
        raise SchemaError(f"Feed record must be an object, got {type(item).__name__}")

    model = AdRecord if is_ad(item) else TrackRecord
    try:
        return model.model_validate(item)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise SchemaError(f"Invalid {model.__name__}: {fields}") from e
