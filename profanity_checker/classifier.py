"""
Profanity classification through the Gemini generateContent API.

Transcripts longer than the model-friendly chunk size are split on
whitespace and classified chunk by chunk; counts for the same word are
summed across chunks and the last chunk's summary is kept.

Transport failures raise ClassificationError. A response the model
produced but that is not valid JSON of the expected shape is recovered as
an empty result with a placeholder summary.
"""

import logging
from typing import Protocol

import httpx
from pydantic import BaseModel, ValidationError

from profanity_checker.config import Settings
from profanity_checker.errors import ClassificationError
from profanity_checker.models import ClassificationResult, ProfanityWord

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
UNPARSEABLE_SUMMARY = "Analysis failed to parse."

PROMPT_TEMPLATE = """You are a profanity detection expert. Analyze the following subtitle text from "{title}" and identify ALL profanities, vulgar language, obscenities, slurs, crude language, and offensive terms.

IMPORTANT RULES:
- Catch ALL variations and misspellings of profanity (e.g., "f***", "sh1t", "a$$", "b!tch")
- Count EVERY occurrence of each word accurately
- Categorize each word into one of these categories:
  - "General Profanity" (f-word, s-word, damn, hell, ass, etc.)
  - "Sexual/Crude" (sexually explicit terms)
  - "Religious/Profane" (blasphemy, taking deity names in vain)
  - "Slurs/Hate Speech" (racial, ethnic, homophobic slurs)
  - "Violence/Threats" (violent or threatening language)
  - "Scatological" (bathroom/bodily function crude terms)
  - "Insults" (b*tch, bastard, idiot used as insults, etc.)
  - "Substance References" (crude drug/alcohol references)
- Rate severity as: "mild" (damn, hell, crap), "moderate" (s-word, ass, bastard), "strong" (f-word, slurs, c-word)
- Be thorough - do not miss any profanity
- This is chunk {chunk_num} of {total_chunks}

Return a JSON object with this EXACT structure:
{{
  "profanities": [
    {{"word": "the word", "count": number_of_occurrences, "category": "category name", "severity": "mild|moderate|strong"}}
  ],
  "summary": "A brief summary of the profanity level found"
}}

Subtitle text to analyze:
{text}"""

# The model is asked to flag offensive language, so its own filters must not block it
SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class ClassificationService(Protocol):
    """Anything that can turn transcript text into flagged words."""

    async def classify(self, text: str, title: str) -> ClassificationResult: ...


class ChunkAnalysis(BaseModel):
    """Expected JSON shape of one model response."""

    profanities: list[ProfanityWord] = []
    summary: str = ""


def chunk_text(text: str, max_chars: int) -> list[str]:
    """
    Split text into chunks of at most max_chars, preferring spaces.

    Each split happens at the last space before the limit when there is one
    after the chunk start; otherwise the chunk is cut at the limit.

    Examples:
        >>> chunk_text("aaa bbb ccc", 7)
        ['aaa bbb', ' ccc']
        >>> chunk_text("short", 50)
        ['short']
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if len(text) <= max_chars:
        return [text]

    chunks = []
    start = 0
    while start < len(text):
        end = start + max_chars
        if end < len(text):
            last_space = text.rfind(" ", 0, end + 1)
            if last_space > start:
                end = last_space
        chunks.append(text[start:end])
        start = end
    return chunks


def merge_words(results: list[ChunkAnalysis]) -> list[ProfanityWord]:
    """
    Sum counts of the same word across chunks, case-insensitively.

    The first chunk that reports a word decides its category and severity.
    """
    merged: dict[str, ProfanityWord] = {}
    for result in results:
        for item in result.profanities:
            key = item.word.lower()
            if key in merged:
                merged[key].count += item.count
            else:
                merged[key] = item.model_copy(update={"word": key})
    return list(merged.values())


class GeminiClassifier:
    """
    Classification service client for Gemini.

    Chunks are sent sequentially so the per-minute quota of the key is
    spent one request at a time.
    """

    def __init__(self, config: Settings | None = None):
        self.config = config or Settings()

    @property
    def api_url(self) -> str:
        return f"{API_BASE}/{self.config.gemini_model}:generateContent"

    async def classify(self, text: str, title: str) -> ClassificationResult:
        """
        Classify a whole transcript.

        Args:
            text: Plain transcript text
            title: Title label included in the prompt

        Returns:
            Merged flagged words and the overall summary

        Raises:
            ClassificationError: If the service cannot be reached or refuses
        """
        if not self.config.gemini_api_key:
            raise ClassificationError("GEMINI_API_KEY not configured")

        chunks = chunk_text(text, self.config.classification_chunk_size)
        results = []

        async with httpx.AsyncClient(timeout=self.config.classification_timeout) as client:
            for index, chunk in enumerate(chunks, start=1):
                logger.info(f"Classifying chunk {index}/{len(chunks)} ({len(chunk)} chars)")
                results.append(await self._classify_chunk(client, chunk, title, index, len(chunks)))

        return ClassificationResult(words=merge_words(results), summary=results[-1].summary)

    async def _classify_chunk(
        self, client: httpx.AsyncClient, text: str, title: str, chunk_num: int, total_chunks: int
    ) -> ChunkAnalysis:
        prompt = PROMPT_TEMPLATE.format(
            title=title, chunk_num=chunk_num, total_chunks=total_chunks, text=text
        )
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": 0.1,
            },
            "safetySettings": SAFETY_SETTINGS,
        }

        try:
            response = await client.post(
                self.api_url,
                params={"key": self.config.gemini_api_key},
                json=body,
            )
        except httpx.TimeoutException as e:
            raise ClassificationError("Gemini API timed out") from e
        except httpx.HTTPError as e:
            raise ClassificationError(f"Gemini API request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Gemini API error: {response.text[:500]}")
            raise ClassificationError(f"Gemini API failed: {response.status_code}")

        try:
            response_text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            response_text = None
        if not response_text:
            raise ClassificationError("No response from Gemini")

        try:
            return ChunkAnalysis.model_validate_json(response_text)
        except ValidationError:
            logger.error(f"Failed to parse Gemini response: {response_text[:500]}")
            return ChunkAnalysis(summary=UNPARSEABLE_SUMMARY)
