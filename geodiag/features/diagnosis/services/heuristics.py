"""
Keyword and selector tables used by the structural extractor.

Landing pages are arbitrary HTML, so section detection is heuristic. All of
the rules live here so they can be extended (or replaced per market) without
touching the extraction control flow. Lists cover English and Japanese pages.
"""
import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple


def _any_of(*words: str) -> Pattern[str]:
    return re.compile("|".join(re.escape(w) for w in words), re.IGNORECASE)


def _class_contains(*markers: str) -> str:
    return ", ".join(f'[class*="{m}"]' for m in markers)


@dataclass(frozen=True)
class MatcherRules:
    # Elements removed before any text is read
    strip_selector: str = "script, style, noscript, iframe, svg, nav, footer"

    # Hero
    hero_selector: str = 'header, [class*="hero"], [class*="Hero"], section'
    hero_image_selector: str = '[class*="hero"] img'

    # h2/h3 that belong to other sections rather than value propositions
    value_prop_denylist: Pattern[str] = field(
        default_factory=lambda: _any_of(
            "FAQ", "よくある", "お問い合わせ", "会社概要",
            "frequently asked", "contact", "about us",
        )
    )

    # Social proof
    testimonial_selector: str = _class_contains(
        "testimonial", "review", "voice", "お客様"
    )
    logo_selector: str = _class_contains("logo", "client", "partner")
    media_selector: str = _class_contains("media", "press", "掲載")

    # A number followed by a unit-like suffix: 98%, 3,000件, 10k users, $5M
    stats_pattern: Pattern[str] = field(
        default_factory=lambda: re.compile(
            r"\d[\d,.]*\s*(?:%|％|万|億|件|人|社|名|倍|年|x\b|[kKmMbB]\+?\s|\+|"
            r"(?:users|customers|clients|companies|downloads|reviews|countries|"
            r"hours|years|million|billion|thousand)\b)"
            r"|[$€£¥￥]\s?\d[\d,.]*\s*[kKmMbB]?\b",
            re.IGNORECASE,
        )
    )

    # Pricing
    pricing_selector: str = _class_contains(
        "price", "pricing", "plan", "料金", "プラン"
    )
    pricing_text_pattern: Pattern[str] = field(
        default_factory=lambda: re.compile(
            r"[¥￥$€£]\s?[0-9][0-9,]*|月額|年額|per month|/mo\b|/month\b",
            re.IGNORECASE,
        )
    )

    # FAQ
    faq_selector: str = '[class*="faq"], [class*="FAQ"], dt, [class*="question"]'
    question_marks: Tuple[str, ...] = ("?", "？")

    # Trust signals, matched against lower-cased page text
    company_info_keywords: Tuple[str, ...] = ("会社概要", "運営会社", "about", "company")
    privacy_keywords: Tuple[str, ...] = ("プライバシー", "privacy")
    regulatory_keywords: Tuple[str, ...] = (
        "特定商取引", "特商法", "terms of service", "legal notice", "imprint",
    )
    contact_keywords: Tuple[str, ...] = ("お問い合わせ", "contact")

    # Urgency language
    urgency_pattern: Pattern[str] = field(
        default_factory=lambda: _any_of(
            "期間限定", "今だけ", "残り", "限定", "先着", "締切", "終了間近", "急げ", "今すぐ",
            "limited time", "only today", "ends soon", "last chance", "hurry",
            "while supplies last", "act now", "only a few left",
        )
    )

    # Calls to action
    cta_selector: str = (
        'button, a[class*="btn"], a[class*="button"], input[type="submit"], [class*="cta"]'
    )

    # Body text: paragraphs under semantic content containers
    body_paragraph_selector: str = (
        "article p, main p, section p, .content p, .post p, .entry p, .body p"
    )
    code_selector: str = "pre, code"

    # Length bounds
    value_prop_max_len: int = 100
    sub_headline_max_len: int = 200
    testimonial_max_len: int = 300
    stat_max_len: int = 100
    media_max_len: int = 100
    faq_max_len: int = 200
    urgency_max_len: int = 100
    cta_max_len: int = 50
    paragraph_min_len: int = 30
    code_min_len: int = 20
    code_max_len: int = 3000
    heading_max_len: int = 200
    link_text_max_len: int = 100


DEFAULT_RULES = MatcherRules()
