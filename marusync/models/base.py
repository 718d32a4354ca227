"""
Base model helpers shared by MaruSync domain models.
"""

import uuid
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


def generate_id() -> str:
    """Generate a unique identifier for a model."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.utcnow()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass a datetime through)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


@dataclass
class BaseModel:
    """Dataclass base with dictionary serialization."""

    def to_dict(self) -> Dict[str, Any]:
        return {key: _serialize(value) for key, value in asdict(self).items()}


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value
