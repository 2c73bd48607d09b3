"""Text and URL normalization shared by every extraction strategy.

These are plain functions: strategies call them but never override them.
"""

import re
from typing import Iterable, Optional, Union
from urllib.parse import urljoin, urlparse, urlunparse

_WHITESPACE = re.compile(r"\s+")
_BRACKETED = re.compile(r"\[[^\]]*\]")
_PARENTHESIZED = re.compile(r"\([^)]*\)")
_CUSTOM_NOTE_SPLIT = re.compile(r"[,&/]")

# File extensions that are never product pages
_SKIP_EXTENSIONS = frozenset({
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".mp4", ".mp3", ".zip", ".css", ".js", ".woff", ".woff2", ".ttf",
})

MIN_NOTE_LENGTH = 2
MAX_NOTE_LENGTH = 49


def clean_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace and line breaks into single spaces."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def canonical_name(text: Optional[str]) -> str:
    """Strip bracketed and parenthetical marketing text from a product name.

    "[8월 커피 월픽] 딥블루레이크 (8/1 ~ 8/31)" becomes "딥블루레이크". If
    stripping leaves nothing the cleaned original is returned.
    """
    cleaned = clean_text(text)
    stripped = clean_text(_PARENTHESIZED.sub("", _BRACKETED.sub("", cleaned)))
    return stripped or cleaned


def extract_price(text: Optional[str], pattern: str) -> Optional[Union[int, float]]:
    """Parse a price with the site's pattern, discarding thousands separators.

    Group 1 of ``pattern`` (or the whole match) holds the numeric part.
    """
    if not text:
        return None
    match = re.search(pattern, text)
    if not match:
        return None
    raw = match.group(1) if match.groups() else match.group(0)
    raw = raw.replace(",", "").strip()
    try:
        if "." in raw:
            return float(raw)
        return int(raw)
    except ValueError:
        return None


def split_tasting_notes(text: Optional[str], parser: str = "comma_separated") -> list[str]:
    """Split raw tasting-note text according to the site's notes parser."""
    if not text:
        return []
    if parser == "comma_separated":
        parts = text.split(",")
    elif parser == "line_separated":
        parts = text.splitlines()
    elif parser == "custom":
        parts = _CUSTOM_NOTE_SPLIT.split(text)
    else:
        parts = [text]
    notes = []
    for part in parts:
        note = clean_text(part)
        if MIN_NOTE_LENGTH <= len(note) <= MAX_NOTE_LENGTH and note not in notes:
            notes.append(note)
    return notes


def resolve_image_url(src: str, base_url: str) -> str:
    """Resolve absolute, protocol-relative and relative image URLs."""
    src = src.strip()
    if src.startswith(("http://", "https://")):
        return src
    if src.startswith("//"):
        return "https:" + src
    return urljoin(base_url.rstrip("/") + "/", src)


def pick_label_image(images: list[str], keywords: Iterable[str]) -> Optional[str]:
    """Choose the label image: first image mentioning a keyword, else the first."""
    lowered = [k.lower() for k in keywords]
    for image in images:
        image_lower = image.lower()
        if any(k in image_lower for k in lowered):
            return image
    return images[0] if images else None


def normalize_url(url: str) -> str:
    """Normalize a URL for deduplication.

    Removes fragments, lowercases scheme/host, strips trailing slashes.
    """
    parsed = urlparse(url)
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        parsed.query,
        "",
    ))


def is_same_domain(url: str, base_domain: str) -> bool:
    """Check if a URL belongs to the same domain (with/without www)."""
    domain = urlparse(url).netloc.lower()
    if domain.startswith("www."):
        domain = domain[4:]
    base = base_domain.lower()
    if base.startswith("www."):
        base = base[4:]
    return domain == base


def should_skip_url(url: str) -> bool:
    """Check if URL should be skipped based on extension or scheme."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return True
    path_lower = parsed.path.lower()
    return any(path_lower.endswith(ext) for ext in _SKIP_EXTENSIONS)


def is_valid_item_url(url: Optional[str]) -> bool:
    """True for syntactically valid http(s) URLs with a host."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def dedupe(urls: Iterable[str]) -> list[str]:
    """Drop duplicates while keeping first-seen order."""
    seen: set[str] = set()
    unique = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique
