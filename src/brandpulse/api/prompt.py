"""
Prompt and response schema for image marketing analysis.
"""
from typing import List, Literal

from pydantic import BaseModel, Field

PlatformName = Literal["Adobe Stock", "Shutterstock", "Freepik"]


class KeywordResponse(BaseModel):
    word: str
    relevance: float = Field(allow_inf_nan=False)
    platforms: List[PlatformName]


class MarketingAnalysisResponse(BaseModel):
    taglines: List[str] = Field(min_length=1)
    keywords: List[KeywordResponse]
    description: str
    platforms: List[str]


TAGLINE_COUNT = 10
KEYWORD_COUNT = 50
SUGGESTED_PLATFORM_COUNT = 3


PROMPT_TEMPLATE = f"""
Act as a professional creative director and Stock Photography SEO expert. Analyze this image and generate:
1. {TAGLINE_COUNT} professional and trending taglines. Ensure a high diversity in tone: include options that are playful, sophisticated, urgent, inspirational, minimalist, and storytelling-driven.
2. {KEYWORD_COUNT} highly relevant keywords.
   - For EACH keyword, provide a relevance score (1-100) and specify which platforms it is BEST suited for (Adobe Stock, Shutterstock, Freepik).
   - When assigning the relevance score, consider the specificity of the term and its potential commercial search volume. High scores (80-100) are reserved for terms that are both highly specific to the image and likely to be high-value search queries.
   - Include a mix of descriptive, conceptual, and technical terms.
   - Keywords should be single words or short phrases.
3. A short, vivid description of the visual mood.
4. Top {SUGGESTED_PLATFORM_COUNT} social media platforms where this visual would perform best.

OUTPUT (STRICT JSON ONLY)
{{
  "taglines": ["<tagline>", ...],
  "keywords": [{{"word": "<keyword>", "relevance": <1..100>, "platforms": ["Adobe Stock" | "Shutterstock" | "Freepik", ...]}}, ...],
  "description": "<mood description>",
  "platforms": ["<social platform>", ...]
}}
No extra text/markdown. JSON only.
""".strip()
