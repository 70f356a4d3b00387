"""
Spell metadata models.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from shared.errors import DataIntegrityError


@dataclass(frozen=True)
class MetadataRecord:
    """Cached metadata for one spell.

    Records are immutable: a refresh replaces the stored record wholesale.
    """
    id: int
    display_names: Mapping[str, str]
    icon_ref: str
    fetched_at: datetime

    def __post_init__(self):
        if not self.display_names:
            raise DataIntegrityError(
                "Metadata record has no display names",
                details={"spell_id": self.id},
            )
        if self.fetched_at.tzinfo is None:
            raise DataIntegrityError(
                "Metadata record fetched_at must be timezone-aware",
                details={"spell_id": self.id},
            )
        object.__setattr__(self, "display_names", MappingProxyType(dict(self.display_names)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_names": dict(self.display_names),
            "icon_ref": self.icon_ref,
            "fetched_at": self.fetched_at.isoformat(),
        }


class SpellResponse(BaseModel):
    """Response model for a spell lookup."""
    id: int = Field(..., description="Spell ID")
    name: str = Field(..., description="Display name in the requested locale")
    icon: str = Field(..., description="Icon reference")


class CacheStatsResponse(BaseModel):
    """Response model for cache statistics."""
    orchestrator: Dict[str, int]
    upstream: Optional[Dict[str, Any]] = None
    refresh_interval_seconds: int
    default_locale: str
