"""
Presentation of spell records for the outbound API.
"""

from typing import Optional

from shared.errors import DataIntegrityError

from .models import MetadataRecord, SpellResponse

DEFAULT_LOCALE = "en_US"


def select_display_name(
    record: MetadataRecord,
    locale: Optional[str] = None,
    default_locale: str = DEFAULT_LOCALE,
) -> str:
    """Pick the name for ``locale``, falling back to ``default_locale``."""
    if locale and locale in record.display_names:
        return record.display_names[locale]
    if default_locale in record.display_names:
        return record.display_names[default_locale]
    raise DataIntegrityError(
        "Spell record has no name in the requested or default locale",
        details={
            "spell_id": record.id,
            "locale": locale,
            "default_locale": default_locale,
            "available_locales": sorted(record.display_names),
        },
    )


def present(
    record: MetadataRecord,
    locale: Optional[str] = None,
    default_locale: str = DEFAULT_LOCALE,
) -> SpellResponse:
    return SpellResponse(
        id=record.id,
        name=select_display_name(record, locale, default_locale),
        icon=record.icon_ref,
    )
