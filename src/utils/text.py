"""Text cleanup for scraped Traditional Chinese pages.

Donation-center pages mix full-width digits, ideographic spaces and stray
zero-width characters into otherwise plain text; dates and addresses only
parse reliably once those are folded away.
"""

import re
import unicodedata

# Full-width digits ０-９ to ASCII
_FULLWIDTH_DIGITS = str.maketrans({chr(0xFF10 + i): str(i) for i in range(10)})

_INVISIBLE = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")


def fold_fullwidth_digits(text: str) -> str:
    """Replace full-width digits with ASCII ones ("１１/２３" -> "11/23")."""
    return text.translate(_FULLWIDTH_DIGITS)


def normalize_whitespace(text: str, preserve_newlines: bool = True) -> str:
    """Collapse runs of whitespace and fold full-width digits.

    The ideographic space (U+3000) and non-breaking space count as spaces;
    zero-width characters are dropped. With ``preserve_newlines`` line breaks
    survive, at most two in a row.
    """
    if not text:
        return text

    text = _INVISIBLE.sub("", text)
    text = fold_fullwidth_digits(text.replace("\u3000", " ").replace("\xa0", " "))

    if preserve_newlines:
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r" ?\n ?", "\n", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
    else:
        text = re.sub(r"\s+", " ", text)

    return text.strip()


def clean_text(text: str | None) -> str | None:
    """Single-line field value: NFC, no control characters, tidy spacing.

    Returns None when nothing is left.
    """
    if not text:
        return None

    text = unicodedata.normalize("NFC", text)
    text = "".join(ch for ch in text if ch in "\n\t" or unicodedata.category(ch) != "Cc")
    text = normalize_whitespace(text)
    return text or None


def strip_label(text: str, label: str) -> str:
    """Remove a leading field label such as "地點：" from a text.

    Example:
        strip_label("【地點】中正紀念堂", "地點") -> "中正紀念堂"
    """
    pattern = rf"^\s*[【\[]?{re.escape(label)}[】\]]?\s*[:：]?\s*"
    return re.sub(pattern, "", text, count=1).strip()
