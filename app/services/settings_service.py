"""
Settings Service: the storefront's singleton navbar/hero configuration.
"""
import logging
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import SettingsIn
from app.models.db_models import StoreSettings, touch

logger = logging.getLogger(__name__)

DEFAULT_NAVBAR = [
    {"label": "Home", "href": "/"},
    {"label": "Collection", "href": "/collection"},
    {"label": "About", "href": "/about"},
    {"label": "Contact", "href": "/contact"},
]

DEFAULT_SLIDES = [
    {"src": "", "title": "Welcome", "subtitle": "Featured collection", "slot": "banner"},
    {"src": "", "title": "", "subtitle": "", "slot": "grid"},
    {"src": "", "title": "", "subtitle": "", "slot": "grid"},
    {"src": "", "title": "", "subtitle": "", "slot": "grid"},
]


def slides_from_images(images: List[str], title: str = "", subtitle: str = "", pad: bool = False) -> List[Dict]:
    """Convert the legacy `hero.images` list: first image is the banner, the rest grid tiles."""
    slides = [
        {"src": src, "title": title or "", "subtitle": subtitle or "", "slot": "banner" if i == 0 else "grid"}
        for i, src in enumerate(images or [])
    ]
    while pad and len(slides) < 4:
        slides.append({"src": "", "title": "", "subtitle": "", "slot": "banner" if not slides else "grid"})
    return slides


def settings_payload(record: StoreSettings) -> Dict:
    return {"navbar": record.navbar or [], "hero": {"slides": (record.hero or {}).get("slides", [])}}


async def get_settings(session: AsyncSession) -> StoreSettings:
    """Return the settings row, creating defaults or migrating the legacy hero shape."""
    result = await session.execute(select(StoreSettings).limit(1))
    record = result.scalar_one_or_none()

    if record is None:
        record = StoreSettings(
            navbar=[dict(item) for item in DEFAULT_NAVBAR],
            hero={"slides": [dict(slide) for slide in DEFAULT_SLIDES]},
        )
        session.add(record)
        await session.commit()
        logger.info("Created default store settings")
        return record

    hero = dict(record.hero or {})
    if not hero.get("slides"):
        hero = {
            "slides": slides_from_images(hero.get("images", []), hero.get("title"), hero.get("subtitle"), pad=True)
        }
        record.hero = hero
        touch(record, "hero")
        await session.commit()
        logger.info("Migrated legacy hero images to slides")
    return record


async def update_settings(session: AsyncSession, data: SettingsIn) -> StoreSettings:
    record = await get_settings(session)

    if data.navbar is not None:
        record.navbar = [item.model_dump() for item in data.navbar]
        touch(record, "navbar")

    if data.hero is not None:
        if data.hero.slides is not None:
            record.hero = {"slides": [slide.model_dump() for slide in data.hero.slides]}
        elif data.hero.images is not None:
            record.hero = {"slides": slides_from_images(data.hero.images, data.hero.title, data.hero.subtitle)}
        touch(record, "hero")

    await session.commit()
    return record
