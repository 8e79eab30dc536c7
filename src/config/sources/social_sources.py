"""Social-media source configurations.

Profiles that post one poster per drive. Posts are discovered from the profile
page and read through their og:image; metadata comes from the vision service.
"""

from src.config.sources import SourceDescriptor, SourceKind, SourceRegistry

SOCIAL_SOURCES: list[SourceDescriptor] = [
    SourceDescriptor(
        id="kaohsiung_instagram",
        kind=SourceKind.SOCIAL,
        display_name="高雄捐血中心 Instagram",
        entry_url="https://www.instagram.com/khblood_tbsf/",
        base_url="https://www.instagram.com",
        city="高雄市",
    ),
]

SourceRegistry.register_many(SOCIAL_SOURCES)
