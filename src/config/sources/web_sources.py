"""Web source configurations.

Regional blood donation centers publish one page per donation drive under a
JavaScript-rendered listing (the "xmdoc" CMS). Listing anchors carry the drive
date in their text, detail pages carry the poster.
"""

from src.config.sources import SourceDescriptor, SourceKind, SourceRegistry

WEB_SOURCES: list[SourceDescriptor] = [
    SourceDescriptor(
        id="taipei",
        kind=SourceKind.WEB,
        display_name="台北捐血中心",
        entry_url="https://www.tp.blood.org.tw/xmdoc?xsmsid=0P062646965467323284",
        base_url="https://www.tp.blood.org.tw",
    ),
    SourceDescriptor(
        id="hsinchu",
        kind=SourceKind.WEB,
        display_name="新竹捐血中心",
        entry_url="https://www.sc.blood.org.tw/xmdoc?xsmsid=0P066666699492479492",
        base_url="https://www.sc.blood.org.tw",
        city="新竹市",
    ),
]

SourceRegistry.register_many(WEB_SOURCES)
