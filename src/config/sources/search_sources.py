"""Image-search source configurations.

Each source is one image-search query restricted to the past week. Result
images are treated as posters and read by the vision service.
"""

from urllib.parse import quote_plus

from src.config.sources import SourceDescriptor, SourceKind, SourceRegistry

IMAGE_SEARCH_BASE_URL = "https://www.google.com"


def build_image_search_url(query: str, recency: str = "qdr:w") -> str:
    """Build an image-search URL for a query.

    Args:
        query: Free-text search query
        recency: Time filter (qdr:d day, qdr:w week, qdr:m month)
    """
    return f"{IMAGE_SEARCH_BASE_URL}/search?q={quote_plus(query)}&tbm=isch&tbs={recency}"


SEARCH_SOURCES: list[SourceDescriptor] = [
    SourceDescriptor(
        id="taichung_search",
        kind=SourceKind.SEARCH,
        display_name="台中捐血中心 (圖片搜尋)",
        entry_url=build_image_search_url("台中捐血中心 捐血活動 贈品"),
        base_url=IMAGE_SEARCH_BASE_URL,
        city="台中市",
    ),
    SourceDescriptor(
        id="kaohsiung_search",
        kind=SourceKind.SEARCH,
        display_name="高雄捐血中心 (圖片搜尋)",
        entry_url=build_image_search_url("site:instagram.com/khblood_tbsf 捐血活動"),
        base_url=IMAGE_SEARCH_BASE_URL,
        city="高雄市",
    ),
]

SourceRegistry.register_many(SEARCH_SOURCES)
