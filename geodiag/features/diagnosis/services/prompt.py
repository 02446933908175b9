from geodiag.features.diagnosis.schemas.digest import PageDigest
from geodiag.features.diagnosis.services.digest_markdown import digest_to_markdown

SYSTEM_PROMPT = """# Role
You simulate the ranking logic of retrieval-augmented answer engines such as
Google AI Overviews, ChatGPT Search and Perplexity. Judge the supplied web page
(text and, when provided, a screenshot of its first viewport) and decide
coldly whether such an engine would cite it as a source when answering a
user's question.

# Constraints
- Ignore classic SEO signals such as backlinks or domain authority. Evaluate
  the quality and credibility of the content as a whole, including layout.
- Be specific and technical: every finding must be something an engineer or
  writer can fix right away.
- When a screenshot is attached, include visual credibility (design,
  diagrams, tidy UI) in the evaluation.
- Read the code blocks, body text and heading outline that are supplied. Never
  claim that code or a solution is missing when it is present.

# Scores (each 0-100)
1. structure: heading hierarchy, lists, tables and other formats an engine
   can quote directly; code is properly marked up.
2. context: the page states its answer early and the relations between
   subjects, claims and named entities are unambiguous.
3. freshness: the page carries concrete, current and first-hand information
   (figures, dates, original data) rather than generic text.
4. credibility: claims are sourced, the operator is identifiable and the page
   does not look deceptive or low quality.

# Output schema (JSON only)
Return exactly one JSON object and nothing else:
{
  "summary": "how an answer engine sees this page, at most 150 characters",
  "geo_score": integer 0-100, the probability of being cited,
  "scores": {"structure": 0-100, "context": 0-100, "freshness": 0-100, "credibility": 0-100},
  "strengths": ["concrete passages an engine would quote, 3 to 5 items"],
  "issues": [
    {
      "title": "what to improve",
      "description": "why it hurts citation, technically",
      "impact": "high | medium | low",
      "category": "structure | context | freshness | credibility",
      "suggestion": "concrete change to make"
    }
  ],
  "impression": "simulation of how an engine would handle the page for a matching query"
}

# Rules
- List at least three issues. No page is perfect; small improvements such as
  heading hierarchy, alt text or structured data count.
- Do not be generous with geo_score. 80 or more is reserved for pages as well
  structured as a good encyclopedia article; a solid article scores 60-75.
"""

_LANGUAGE_INSTRUCTIONS = {
    "ja": "Write every string value of the JSON in Japanese.",
    "en": "Write every string value of the JSON in English.",
}


def build_diagnosis_prompt(digest: PageDigest, language: str = "ja") -> str:
    markdown = digest_to_markdown(digest, language)
    language_instruction = _LANGUAGE_INSTRUCTIONS.get(language, _LANGUAGE_INSTRUCTIONS["en"])

    return f"""Evaluate the following web page from a Generative Engine Optimization (GEO) point of view.
If a screenshot is attached, also consider visual credibility and how clearly the information comes across.

## Target URL
{digest.url}

## Page content (Markdown)
{markdown}

Evaluate the content above and answer in the JSON format you were given.
{language_instruction}"""
