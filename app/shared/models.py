from datetime import date, datetime, time, timezone
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in every document."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_datetime(value: Any) -> Optional[datetime]:
    """
    Normalize a stored temporal value to a naive UTC datetime.

    Historical documents hold dates in several shapes, so this is the single
    place they are coerced:
    - datetime (aware values are converted to UTC)
    - date
    - ISO 8601 strings (a trailing "Z" is accepted)
    - epoch seconds or epoch milliseconds
    - timestamp maps such as {"seconds": ..., "nanoseconds": ...}

    Returns None for None and empty strings.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, date):
        return datetime.combine(value, time.min)

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            raise ValueError(f"Unrecognized timestamp mapping: {value!r}")
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        return normalize_datetime(float(seconds) + float(nanos) / 1e9)

    if isinstance(value, bool):
        raise ValueError("Booleans are not timestamps")

    if isinstance(value, (int, float)):
        # Values past year ~2286 in seconds are epoch milliseconds
        seconds = value / 1000 if abs(value) >= 1e10 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return normalize_datetime(datetime.fromisoformat(text))

    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _required_timestamp(value: Any) -> datetime:
    normalized = normalize_datetime(value)
    return normalized if normalized is not None else utcnow()


# Missing required timestamps read back as "now", optional ones stay None
Timestamp = Annotated[datetime, BeforeValidator(_required_timestamp)]
OptionalTimestamp = Annotated[Optional[datetime], BeforeValidator(normalize_datetime)]


class TimestampMixin(BaseModel):
    """Mixin for adding timestamp fields to documents."""

    created_at: Timestamp = Field(default_factory=utcnow)
    updated_at: Timestamp = Field(default_factory=utcnow)

    def update_timestamp(self):
        """Update the updated_at timestamp."""
        self.updated_at = utcnow()


class StoredModel(BaseModel):
    """
    Base class for entities persisted as store documents.

    Documents are plain dicts keyed by "_id"; the store's revision field and
    any unknown keys from older records are ignored on read.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        data = {key: value for key, value in document.items() if not key.startswith("_")}
        data["id"] = str(document["_id"])
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="python", exclude={"id"})


class EmbeddedModel(BaseModel):
    """Base class for records embedded inside a stored document."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)
