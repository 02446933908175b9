from geodiag.features.diagnosis.schemas.digest import (
    Heading,
    Hero,
    Link,
    PageDigest,
    PageMeta,
    Pricing,
    Table,
    TrustSignals,
)
from geodiag.features.diagnosis.services.digest_markdown import (
    digest_to_markdown,
    table_to_markdown,
)
from geodiag.features.diagnosis.services.prompt import SYSTEM_PROMPT, build_diagnosis_prompt


def make_digest(**fields) -> PageDigest:
    return PageDigest(url="https://acme.example/", **fields)


def test_empty_digest_renders_nothing():
    assert digest_to_markdown(make_digest()) == ""


def test_sections_in_fixed_order():
    digest = make_digest(
        meta=PageMeta(title="Acme", description="Analytics for teams"),
        hero=Hero(headline="Understand your customers"),
        value_props=["Dashboards"],
        faq=["Can I cancel?"],
        body_text="Body paragraph.",
    )

    assert digest_to_markdown(digest) == (
        "# Acme\n\n"
        "> Analytics for teams\n\n"
        "## Main message\nUnderstand your customers\n\n"
        "## Key features and value propositions\n- Dashboards\n\n"
        "## Frequently asked questions\n- Can I cancel?\n\n"
        "## Body text\nBody paragraph."
    )


def test_pricing_only_when_displayed_with_text():
    hidden = make_digest(pricing=Pricing(displayed=True, text=""))
    shown = make_digest(pricing=Pricing(displayed=True, text="$29 per month"))

    assert "Pricing" not in digest_to_markdown(hidden)
    assert "## Pricing\n$29 per month" in digest_to_markdown(shown)


def test_trust_signals_list_only_present_ones():
    digest = make_digest(trust_signals=TrustSignals(has_privacy_policy=True, has_contact=True))
    assert digest_to_markdown(digest) == (
        "## Trust signals\n- Privacy policy present\n- Contact details present"
    )


def test_heading_outline_is_indented_by_level():
    digest = make_digest(headings=[Heading(level=1, text="Top"), Heading(level=3, text="Deep")])
    assert digest_to_markdown(digest) == "## Heading outline (2)\n- h1: Top\n    - h3: Deep"


def test_code_blocks_are_fenced():
    digest = make_digest(code_blocks=["print('hello world, docs')"])
    assert "```\nprint('hello world, docs')\n```" in digest_to_markdown(digest)


def test_links_split_and_limited_per_kind():
    links = [Link(classification="internal", url=f"/p{i}", text=f"Page {i}") for i in range(12)]
    links.append(Link(classification="external", url="https://github.com/acme", text="GitHub"))
    markdown = digest_to_markdown(make_digest(links=links))

    assert "### Internal links (12)" in markdown
    assert "- [Page 9](/p9)" in markdown
    assert "/p10" not in markdown
    assert "### External links (1)\n- [GitHub](https://github.com/acme)" in markdown


def test_external_only_links_omit_internal_sublist():
    links = [Link(classification="external", url="https://x.example", text="X")]
    markdown = digest_to_markdown(make_digest(links=links))
    assert "Internal links" not in markdown


def test_table_grid():
    table = Table(headers=["Plan", "Seats"], rows=[["Starter", "5"], ["Team"]])
    assert table_to_markdown(table) == (
        "| Plan | Seats |\n"
        "| --- | --- |\n"
        "| Starter | 5 |\n"
        "| Team |  |"
    )


def test_table_without_headers_promotes_first_row():
    table = Table(rows=[["a", "b|c"], ["d", "e"]])
    assert table_to_markdown(table) == "| a | b\\|c |\n| --- | --- |\n| d | e |"


def test_japanese_labels():
    digest = make_digest(value_props=["高速"])
    assert digest_to_markdown(digest, "ja") == "## 主な特徴・価値提案\n- 高速"


def test_rendering_is_deterministic(landing_html):
    from geodiag.features.diagnosis.services.structural_extractor import StructuralExtractor

    digest = StructuralExtractor().extract(landing_html, "https://acme.example/")
    assert digest_to_markdown(digest) == digest_to_markdown(digest)


def test_prompt_wraps_markdown_with_url_and_language():
    digest = make_digest(meta=PageMeta(title="Acme"))
    prompt = build_diagnosis_prompt(digest, "ja")

    assert "https://acme.example/" in prompt
    assert "# Acme" in prompt
    assert "Japanese" in prompt


def test_system_prompt_names_the_score_axes():
    for axis in ("structure", "context", "freshness", "credibility", "geo_score"):
        assert axis in SYSTEM_PROMPT
