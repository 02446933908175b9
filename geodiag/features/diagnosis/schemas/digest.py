from typing import Callable, Hashable, Iterable, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

# Hard limits on every bounded collection of a PageDigest
VALUE_PROPS_CAP = 10
TESTIMONIALS_CAP = 5
STATS_CAP = 10
MEDIA_CAP = 5
PRICING_TEXT_CAP = 500
FAQ_CAP = 10
URGENCY_CAP = 5
CTA_CAP = 10
BODY_TEXT_CAP = 5000
CODE_BLOCKS_CAP = 10
HEADINGS_CAP = 30
LINKS_CAP = 20
TABLES_CAP = 10


def first_unique(
    items: Iterable[T],
    cap: int,
    key: Optional[Callable[[T], Hashable]] = None,
) -> List[T]:
    """Drop later duplicates, then keep at most `cap` items in original order."""
    seen = set()
    out: List[T] = []
    for item in items:
        marker = key(item) if key else item
        if marker in seen:
            continue
        seen.add(marker)
        out.append(item)
        if len(out) >= cap:
            break
    return out


def _model_key(item: BaseModel) -> str:
    return item.model_dump_json()


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Hero(_Frozen):
    headline: str = ""
    sub_headline: str = ""
    primary_call_to_action: str = ""
    has_hero_image: bool = False


class Proof(_Frozen):
    testimonials: List[str] = []
    stats: List[str] = []
    has_logos: bool = False
    media: List[str] = []

    @field_validator("testimonials")
    @classmethod
    def _cap_testimonials(cls, v: List[str]) -> List[str]:
        return first_unique(v, TESTIMONIALS_CAP)

    @field_validator("stats")
    @classmethod
    def _cap_stats(cls, v: List[str]) -> List[str]:
        return first_unique(v, STATS_CAP)

    @field_validator("media")
    @classmethod
    def _cap_media(cls, v: List[str]) -> List[str]:
        return first_unique(v, MEDIA_CAP)


class Pricing(_Frozen):
    displayed: bool = False
    text: str = ""

    @field_validator("text")
    @classmethod
    def _cap_text(cls, v: str) -> str:
        return v[:PRICING_TEXT_CAP]


class TrustSignals(_Frozen):
    has_company_info: bool = False
    has_privacy_policy: bool = False
    has_regulatory_disclosure: bool = False
    has_contact: bool = False


class PageMeta(_Frozen):
    title: str = ""
    description: str = ""


class Heading(_Frozen):
    level: int = Field(ge=1, le=6)
    text: str


class Link(_Frozen):
    classification: Literal["internal", "external"]
    url: str
    text: str


class Table(_Frozen):
    headers: List[str] = []
    rows: List[List[str]] = []


class PageDigest(_Frozen):
    """
    Bounded structural summary of one rendered page.

    Every collection is de-duplicated (first occurrence wins) and then capped
    when the model is built, so consumers never see an over-limit value.
    """
    url: str
    hero: Hero = Field(default_factory=Hero)
    value_props: List[str] = []
    proof: Proof = Field(default_factory=Proof)
    pricing: Pricing = Field(default_factory=Pricing)
    faq: List[str] = []
    trust_signals: TrustSignals = Field(default_factory=TrustSignals)
    urgency_markers: List[str] = []
    calls_to_action: List[str] = []
    meta: PageMeta = Field(default_factory=PageMeta)
    screenshot: str = ""  # base64 JPEG, first viewport only
    body_text: str = ""
    code_blocks: List[str] = []
    headings: List[Heading] = []
    links: List[Link] = []
    tables: List[Table] = []

    @field_validator("value_props")
    @classmethod
    def _cap_value_props(cls, v: List[str]) -> List[str]:
        return first_unique(v, VALUE_PROPS_CAP)

    @field_validator("faq")
    @classmethod
    def _cap_faq(cls, v: List[str]) -> List[str]:
        return first_unique(v, FAQ_CAP)

    @field_validator("urgency_markers")
    @classmethod
    def _cap_urgency(cls, v: List[str]) -> List[str]:
        return first_unique(v, URGENCY_CAP)

    @field_validator("calls_to_action")
    @classmethod
    def _cap_ctas(cls, v: List[str]) -> List[str]:
        return first_unique(v, CTA_CAP)

    @field_validator("body_text")
    @classmethod
    def _cap_body_text(cls, v: str) -> str:
        return v[:BODY_TEXT_CAP]

    @field_validator("code_blocks")
    @classmethod
    def _cap_code_blocks(cls, v: List[str]) -> List[str]:
        return first_unique(v, CODE_BLOCKS_CAP)

    @field_validator("headings")
    @classmethod
    def _cap_headings(cls, v: List[Heading]) -> List[Heading]:
        return first_unique(v, HEADINGS_CAP, key=_model_key)

    @field_validator("links")
    @classmethod
    def _cap_links(cls, v: List[Link]) -> List[Link]:
        return first_unique(v, LINKS_CAP, key=_model_key)

    @field_validator("tables")
    @classmethod
    def _cap_tables(cls, v: List[Table]) -> List[Table]:
        return first_unique(v, TABLES_CAP, key=_model_key)
