"""
Markdown rendering of a PageDigest for the scoring prompt.

Sections appear in a fixed order and a section with nothing to show is left
out entirely, so the same digest always produces the same document.
"""
from typing import Dict, List

from geodiag.features.diagnosis.schemas.digest import Link, PageDigest, Table

MAX_LINKS_PER_KIND = 10

LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "hero": "Main message",
        "value_props": "Key features and value propositions",
        "stats": "Results and figures",
        "testimonials": "Customer testimonials",
        "media": "Media mentions",
        "pricing": "Pricing",
        "faq": "Frequently asked questions",
        "ctas": "Calls to action",
        "trust": "Trust signals",
        "company_info": "Company information present",
        "privacy_policy": "Privacy policy present",
        "regulatory": "Commercial disclosure present",
        "contact": "Contact details present",
        "urgency": "Urgency markers",
        "body": "Body text",
        "code": "Code blocks",
        "snippet": "Code snippet",
        "headings": "Heading outline",
        "links": "Links",
        "internal": "Internal links",
        "external": "External links",
        "tables": "Tables",
        "table": "Table",
    },
    "ja": {
        "hero": "メインメッセージ",
        "value_props": "主な特徴・価値提案",
        "stats": "実績・数値データ",
        "testimonials": "お客様の声",
        "media": "メディア掲載",
        "pricing": "料金情報",
        "faq": "よくある質問",
        "ctas": "CTA（行動喚起）",
        "trust": "信頼性要素",
        "company_info": "会社概要あり",
        "privacy_policy": "プライバシーポリシーあり",
        "regulatory": "特定商取引法表記あり",
        "contact": "問い合わせ先あり",
        "urgency": "限定・緊急性の訴求",
        "body": "記事本文",
        "code": "コードブロック",
        "snippet": "コードスニペット",
        "headings": "見出し構造",
        "links": "リンク情報",
        "internal": "内部リンク",
        "external": "外部リンク",
        "tables": "表",
        "table": "表",
    },
}


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def table_to_markdown(table: Table) -> str:
    """Pipe-delimited grid; the first data row stands in when there are no headers."""
    header = list(table.headers)
    rows = [list(r) for r in table.rows]
    if not header and rows:
        header, rows = rows[0], rows[1:]

    width = max([len(header)] + [len(r) for r in rows])
    header += [""] * (width - len(header))

    lines = [
        "| " + " | ".join(_cell(h) for h in header) + " |",
        "| " + " | ".join("---" for _ in header) + " |",
    ]
    for row in rows:
        row += [""] * (width - len(row))
        lines.append("| " + " | ".join(_cell(c) for c in row) + " |")
    return "\n".join(lines)


def _links_section(links: List[Link], labels: Dict[str, str]) -> str:
    parts = []
    for kind in ("internal", "external"):
        matching = [link for link in links if link.classification == kind]
        if matching:
            shown = _bullets([f"[{link.text}]({link.url})" for link in matching[:MAX_LINKS_PER_KIND]])
            parts.append(f"### {labels[kind]} ({len(matching)})\n{shown}")
    return "\n\n".join(parts)


def digest_to_markdown(digest: PageDigest, language: str = "en") -> str:
    labels = LABELS.get(language, LABELS["en"])
    sections: List[str] = []

    if digest.meta.title:
        sections.append(f"# {digest.meta.title}")
    if digest.meta.description:
        sections.append(f"> {digest.meta.description}")

    hero_lines = [
        line
        for line in (digest.hero.headline, digest.hero.sub_headline, digest.hero.primary_call_to_action)
        if line
    ]
    if hero_lines:
        sections.append(f"## {labels['hero']}\n" + "\n".join(hero_lines))

    bullet_sections = [
        ("value_props", digest.value_props),
        ("stats", digest.proof.stats),
        ("testimonials", digest.proof.testimonials),
        ("media", digest.proof.media),
    ]
    for label, items in bullet_sections:
        if items:
            sections.append(f"## {labels[label]}\n{_bullets(items)}")

    if digest.pricing.displayed and digest.pricing.text:
        sections.append(f"## {labels['pricing']}\n{digest.pricing.text}")

    if digest.faq:
        sections.append(f"## {labels['faq']}\n{_bullets(digest.faq)}")
    if digest.calls_to_action:
        sections.append(f"## {labels['ctas']}\n{_bullets(digest.calls_to_action)}")
    if digest.urgency_markers:
        sections.append(f"## {labels['urgency']}\n{_bullets(digest.urgency_markers)}")

    trust = digest.trust_signals
    trust_items = [
        labels[name]
        for name, present in (
            ("company_info", trust.has_company_info),
            ("privacy_policy", trust.has_privacy_policy),
            ("regulatory", trust.has_regulatory_disclosure),
            ("contact", trust.has_contact),
        )
        if present
    ]
    if trust_items:
        sections.append(f"## {labels['trust']}\n{_bullets(trust_items)}")

    if digest.body_text:
        sections.append(f"## {labels['body']}\n{digest.body_text}")

    if digest.code_blocks:
        snippets = "\n\n".join(
            f"### {labels['snippet']} {i}\n```\n{code}\n```"
            for i, code in enumerate(digest.code_blocks, start=1)
        )
        sections.append(f"## {labels['code']} ({len(digest.code_blocks)})\n{snippets}")

    if digest.headings:
        outline = "\n".join(
            f"{'  ' * (h.level - 1)}- h{h.level}: {h.text}" for h in digest.headings
        )
        sections.append(f"## {labels['headings']} ({len(digest.headings)})\n{outline}")

    if digest.links:
        sections.append(f"## {labels['links']}\n{_links_section(digest.links, labels)}")

    if digest.tables:
        grids = "\n\n".join(
            f"### {labels['table']} {i}\n{table_to_markdown(t)}"
            for i, t in enumerate(digest.tables, start=1)
        )
        sections.append(f"## {labels['tables']} ({len(digest.tables)})\n{grids}")

    return "\n\n".join(sections)
