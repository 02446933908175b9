import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from geodiag.features.diagnosis.schemas.digest import (
    BODY_TEXT_CAP,
    Heading,
    Hero,
    Link,
    PageDigest,
    PageMeta,
    Pricing,
    Proof,
    Table,
    TrustSignals,
)
from geodiag.features.diagnosis.services.heuristics import DEFAULT_RULES, MatcherRules

logger = logging.getLogger(__name__)

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def _text(el: Optional[Tag]) -> str:
    """Visible text of an element with whitespace collapsed."""
    if el is None:
        return ""
    return " ".join(el.get_text(" ").split())


def _own_text(el: Tag) -> str:
    """Text of the element's direct text children only (no descendants, no comments)."""
    parts = [
        str(child)
        for child in el.children
        if isinstance(child, NavigableString) and not isinstance(child, PreformattedString)
    ]
    return " ".join("".join(parts).split())


class StructuralExtractor:
    """
    Turns a rendered DOM snapshot into a bounded PageDigest.

    Pure function of (html, source_url): no I/O, and it never raises on
    unexpected markup. Missing sections simply come back empty.
    """

    def __init__(self, rules: MatcherRules = DEFAULT_RULES):
        self.rules = rules

    def extract(self, dom_html: str, source_url: str, screenshot: str = "") -> PageDigest:
        soup = BeautifulSoup(dom_html or "", "html.parser")

        meta = self._extract_meta(soup)

        # Boilerplate goes before any text is read
        for el in soup.select(self.rules.strip_selector):
            el.decompose()

        value_props = self._extract_value_props(soup)
        page_text = soup.get_text(" ").lower()

        digest = PageDigest(
            url=source_url,
            hero=self._extract_hero(soup, value_props),
            value_props=value_props,
            proof=self._extract_proof(soup),
            pricing=self._extract_pricing(soup, page_text),
            faq=self._extract_faq(soup),
            trust_signals=self._extract_trust_signals(page_text),
            urgency_markers=self._extract_urgency(soup),
            calls_to_action=self._extract_ctas(soup),
            meta=meta,
            screenshot=screenshot,
            body_text=self._extract_body_text(soup),
            code_blocks=self._extract_code_blocks(soup),
            headings=self._extract_headings(soup),
            links=self._extract_links(soup, source_url),
            tables=self._extract_tables(soup),
        )
        logger.debug(
            f"Extracted digest for {source_url}: {len(digest.headings)} headings, "
            f"{len(digest.links)} links, {len(digest.body_text)} body chars"
        )
        return digest

    # ── Head ─────────────────────────────────────

    @staticmethod
    def _extract_meta(soup: BeautifulSoup) -> PageMeta:
        description_el = soup.find("meta", attrs={"name": "description"})
        description = (description_el.get("content") or "").strip() if description_el else ""
        return PageMeta(title=_text(soup.find("title")), description=description)

    # ── Hero & value propositions ────────────────

    def _extract_value_props(self, soup: BeautifulSoup) -> List[str]:
        props = []
        for el in soup.find_all(["h2", "h3"]):
            text = _text(el)
            if not text or len(text) >= self.rules.value_prop_max_len:
                continue
            if self.rules.value_prop_denylist.search(text):
                continue
            props.append(text)
        return props

    def _extract_hero(self, soup: BeautifulSoup, value_props: List[str]) -> Hero:
        h1 = _text(soup.find("h1"))
        hero = soup.select_one(self.rules.hero_selector)

        sub_headline = ""
        cta = ""
        has_image = soup.select_one(self.rules.hero_image_selector) is not None
        if hero is not None:
            sub_headline = _text(hero.select_one("p, h2"))[: self.rules.sub_headline_max_len]
            cta = _text(hero.select_one("a, button"))
            has_image = has_image or hero.find("img") is not None

        return Hero(
            headline=h1 or (value_props[0] if value_props else ""),
            sub_headline=sub_headline,
            primary_call_to_action=cta,
            has_hero_image=has_image,
        )

    # ── Social proof ─────────────────────────────

    def _extract_proof(self, soup: BeautifulSoup) -> Proof:
        rules = self.rules

        testimonials = [
            text[: rules.testimonial_max_len]
            for text in (_text(el) for el in soup.select(rules.testimonial_selector))
            if text
        ]

        stats = []
        for el in soup.find_all(True):
            own = _own_text(el)
            if own and rules.stats_pattern.search(own):
                stats.append(own[: rules.stat_max_len])

        media = [
            text[: rules.media_max_len]
            for text in (_text(el) for el in soup.select(rules.media_selector))
            if text
        ]

        return Proof(
            testimonials=testimonials,
            stats=stats,
            has_logos=soup.select_one(rules.logo_selector) is not None,
            media=media,
        )

    # ── Offer ────────────────────────────────────

    def _extract_pricing(self, soup: BeautifulSoup, page_text: str) -> Pricing:
        sections = soup.select(self.rules.pricing_selector)
        texts = list(dict.fromkeys(t for t in (_text(el) for el in sections) if t))
        displayed = bool(sections) or self.rules.pricing_text_pattern.search(page_text) is not None
        return Pricing(displayed=displayed, text=" ".join(texts))

    def _extract_faq(self, soup: BeautifulSoup) -> List[str]:
        questions = []
        for el in soup.select(self.rules.faq_selector):
            text = _text(el)[: self.rules.faq_max_len]
            if text and any(mark in text for mark in self.rules.question_marks):
                questions.append(text)
        return questions

    def _extract_trust_signals(self, page_text: str) -> TrustSignals:
        def mentions(keywords) -> bool:
            return any(k.lower() in page_text for k in keywords)

        return TrustSignals(
            has_company_info=mentions(self.rules.company_info_keywords),
            has_privacy_policy=mentions(self.rules.privacy_keywords),
            has_regulatory_disclosure=mentions(self.rules.regulatory_keywords),
            has_contact=mentions(self.rules.contact_keywords),
        )

    def _extract_urgency(self, soup: BeautifulSoup) -> List[str]:
        markers = []
        for el in soup.find_all(True):
            own = _own_text(el)
            if own and self.rules.urgency_pattern.search(own):
                markers.append(own[: self.rules.urgency_max_len])
        return markers

    def _extract_ctas(self, soup: BeautifulSoup) -> List[str]:
        ctas = []
        for el in soup.select(self.rules.cta_selector):
            text = _text(el) or (el.get("value") or "").strip()
            if text and len(text) < self.rules.cta_max_len:
                ctas.append(text)
        return ctas

    # ── Article content ──────────────────────────

    def _paragraphs(self, elements) -> List[str]:
        return [
            text for text in (_text(el) for el in elements)
            if len(text) > self.rules.paragraph_min_len
        ]

    def _extract_body_text(self, soup: BeautifulSoup) -> str:
        paragraphs = self._paragraphs(soup.select(self.rules.body_paragraph_selector))
        if not paragraphs:
            # Many sites have no semantic containers at all
            paragraphs = self._paragraphs(soup.find_all("p"))
        unique = list(dict.fromkeys(paragraphs))
        return "\n\n".join(unique)[:BODY_TEXT_CAP]

    def _extract_code_blocks(self, soup: BeautifulSoup) -> List[str]:
        blocks = []
        for el in soup.select(self.rules.code_selector):
            code = el.get_text().strip()
            if self.rules.code_min_len < len(code) < self.rules.code_max_len:
                blocks.append(code)
        return blocks

    def _extract_headings(self, soup: BeautifulSoup) -> List[Heading]:
        # Document order matters downstream; never sort these
        headings = []
        for el in soup.find_all(HEADING_TAGS):
            text = _text(el)
            if text and len(text) < self.rules.heading_max_len:
                headings.append(Heading(level=int(el.name[1]), text=text))
        return headings

    def _extract_links(self, soup: BeautifulSoup, source_url: str) -> List[Link]:
        try:
            source_host = urlparse(source_url).hostname
        except ValueError:
            source_host = None

        links = []
        for a in soup.find_all("a", href=True):
            href = (a.get("href") or "").strip()
            text = _text(a)
            if not href or not text or len(text) > self.rules.link_text_max_len:
                continue
            try:
                host = urlparse(urljoin(source_url, href)).hostname
            except ValueError:
                continue
            classification = "internal" if host is not None and host == source_host else "external"
            links.append(Link(classification=classification, url=href, text=text))
        return links

    @staticmethod
    def _extract_tables(soup: BeautifulSoup) -> List[Table]:
        tables = []
        for table in soup.find_all("table"):
            all_rows = table.find_all("tr")

            thead = table.find("thead")
            header_row = thead.find("tr") if thead is not None else None
            if header_row is None and thead is None and all_rows and all_rows[0].find("th"):
                header_row = all_rows[0]

            if header_row is not None:
                headers = [_text(c) for c in header_row.find_all(["th", "td"])]
            elif thead is not None:
                headers = [_text(c) for c in thead.find_all(["th", "td"])]
            else:
                headers = []

            rows = []
            for tr in all_rows:
                if tr is header_row or any(p is thead for p in tr.parents):
                    continue
                cells = [_text(c) for c in tr.find_all(["td", "th"])]
                if any(cells):
                    rows.append(cells)

            if headers or rows:
                tables.append(Table(headers=headers, rows=rows))
        return tables
