"""Ordered fallback-chain field extraction over a parsed product page.

Each field is described by a chain of ``FieldRule``s. Rules are tried in
order and the first one that yields a non-empty, plausible value wins, so
no single selector is load-bearing when a site changes its markup.
"""

import logging
import re
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment

from coffee_crawler.crawler.normalize import clean_text, dedupe
from coffee_crawler.models import FieldRule

logger = logging.getLogger(__name__)

_IMAGE_ATTRS = ("src", "data-src", "data-original", "data-lazy-src")


class ProductPage:
    """A loaded item page: its HTML parsed once, queried many times."""

    def __init__(self, url: str, html: str, title: str = ""):
        self.url = url
        self.title = clean_text(title)
        self.soup = BeautifulSoup(html, "lxml")
        if not self.title and self.soup.title and self.soup.title.string:
            self.title = clean_text(self.soup.title.string)
        self._body_text: Optional[str] = None

    @property
    def body_text(self) -> str:
        """Visible page text with scripts and styles removed."""
        if self._body_text is None:
            body = self.soup.body or self.soup
            parts = [
                s for s in body.find_all(string=True)
                if not isinstance(s, Comment)
                and s.parent is not None
                and s.parent.name not in ("script", "style", "noscript")
            ]
            self._body_text = clean_text(" ".join(parts))
        return self._body_text

    def select_texts(self, selector: str) -> list[str]:
        try:
            elements = self.soup.select(selector)
        except ValueError as e:
            # soupsieve rejects selectors it cannot parse
            logger.debug("Bad selector %r: %s", selector, e)
            return []
        return [clean_text(el.get_text(" ")) for el in elements]

    def select_attrs(self, selector: str, attribute: str) -> list[str]:
        try:
            elements = self.soup.select(selector)
        except ValueError as e:
            logger.debug("Bad selector %r: %s", selector, e)
            return []
        values = []
        for el in elements:
            value = el.get(attribute)
            if isinstance(value, list):
                value = " ".join(value)
            if value:
                values.append(value.strip())
        return values

    def option_texts(self, selector: Optional[str] = None) -> list[str]:
        return self.select_texts(selector or "select option")

    def image_sources(self, selector: str) -> list[str]:
        """src (or lazy-load attribute) of every image matched by selector."""
        try:
            elements = self.soup.select(selector)
        except ValueError as e:
            logger.debug("Bad selector %r: %s", selector, e)
            return []
        sources = []
        for el in elements:
            for attr in _IMAGE_ATTRS:
                value = el.get(attr)
                if value and not str(value).startswith("data:"):
                    sources.append(str(value).strip())
                    break
        return sources

    def absolute(self, href: str) -> Optional[str]:
        """href resolved against the page URL, or None if it cannot be parsed."""
        try:
            return urljoin(self.url, href)
        except ValueError as e:
            logger.debug("Skipping malformed href %r: %s", href, e)
            return None

    def links(self, selector: str = "a[href]") -> list[str]:
        """Absolute hrefs of anchors matched by selector, in document order."""
        hrefs = []
        for href in self.select_attrs(selector, "href"):
            if href.startswith(("#", "javascript:", "mailto:", "tel:")):
                continue
            link = self.absolute(href)
            if link:
                hrefs.append(link)
        return dedupe(hrefs)

    def scope(self, rule: FieldRule) -> list[str]:
        """Texts a rule looks at, according to its source."""
        if rule.source == "title":
            return [self.title] if self.title else []
        if rule.source == "options":
            return self.option_texts(rule.selector)
        if rule.source == "attr":
            if not rule.selector or not rule.attribute:
                return []
            return self.select_attrs(rule.selector, rule.attribute)
        if rule.selector:
            return self.select_texts(rule.selector)
        return [self.body_text] if self.body_text else []


def apply_rule(page: ProductPage, rule: FieldRule) -> Optional[str]:
    """First plausible candidate produced by one rule, or None."""
    for text in page.scope(rule):
        candidate = text
        if rule.pattern:
            match = re.search(rule.pattern, text, re.IGNORECASE)
            if not match:
                continue
            candidate = match.group(1) if match.groups() else match.group(0)
        if rule.strip:
            candidate = re.sub(rule.strip, "", candidate)
        candidate = clean_text(candidate)
        if len(candidate) < rule.min_length:
            continue
        if any(marker in candidate for marker in rule.exclude):
            continue
        return candidate
    return None


def first_match(
    page: ProductPage,
    rules: Iterable[FieldRule],
    convert: Optional[Callable[[str], Any]] = None,
) -> Any:
    """Walk the fallback chain and return the first value any rule yields.

    With ``convert``, a rule's candidate only counts when the converted
    value is truthy (e.g. a price string that actually parses).
    """
    for rule in rules:
        value = apply_rule(page, rule)
        if not value:
            continue
        if convert is None:
            return value
        converted = convert(value)
        if converted:
            return converted
    return None


def vocabulary_pattern(words: Iterable[str]) -> str:
    """A capturing alternation regex for a list of literal words."""
    return "(" + "|".join(re.escape(w) for w in words) + ")"


# Stop a labeled value at the next "Label:" or sentence break
_LABEL_STOP = r"(?=\s*(?:tasting notes?|flavou?r notes?|cup notes?|[\w-]+)\s*[:：]|\s*[.;|]|$)"


def labeled_pattern(labels: str) -> str:
    """Regex capturing the value after ``Label:`` for any of ``labels``."""
    return rf"(?:{labels})\s*[:：]\s*(.+?){_LABEL_STOP}"
