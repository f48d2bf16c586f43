"""
Base functionality for image marketing analysis.

This module provides the provider-independent half of the analysis adapter:
payload encoding, response parsing and validation, and the conversion of the
provider response into an AnalysisResult.
"""

import asyncio
import base64
import json
from typing import Any, Dict, Optional, Union
from abc import ABC, abstractmethod

from pydantic import ValidationError

from ..core.errors import MalformedResponseError, TransportError, ProviderError
from ..core.models import AnalysisResult, KeywordMetadata, Platform
from ..utils.log_utils import get_logger
from .prompt import MarketingAnalysisResponse

logger = get_logger(__name__)

EMPTY_RESPONSE_MESSAGE = "Empty response from AI"
INVALID_FORMAT_MESSAGE = "Invalid format received from AI"


def clamp_relevance(value: float) -> int:
    return int(min(100, max(1, round(value))))


def to_analysis_result(response: MarketingAnalysisResponse) -> AnalysisResult:
    """Convert a validated provider response into an immutable AnalysisResult.

    Keyword words are unique per result: later duplicates are dropped.
    """
    keywords = []
    seen = set()
    for kw in response.keywords:
        word = kw.word.strip()
        if not word or word in seen:
            continue
        seen.add(word)
        platforms = tuple(dict.fromkeys(Platform(p) for p in kw.platforms))
        keywords.append(KeywordMetadata(word=word, relevance=clamp_relevance(kw.relevance), platforms=platforms))
    return AnalysisResult(
        taglines=tuple(response.taglines),
        keywords=tuple(keywords),
        description=response.description,
        suggested_platforms=tuple(response.platforms),
    )


def parse_response(response: Union[str, Dict[str, Any], None]) -> AnalysisResult:
    """Parse raw provider output into an AnalysisResult.

    Raises:
        MalformedResponseError: if the response is empty, not JSON, or does not match the schema
    """
    if response is None or (isinstance(response, str) and not response.strip()):
        raise MalformedResponseError(EMPTY_RESPONSE_MESSAGE)
    try:
        data = json.loads(response) if isinstance(response, str) else response
        return to_analysis_result(MarketingAnalysisResponse.model_validate(data))
    except (json.JSONDecodeError, ValidationError, ValueError) as err:
        logger.error("Failed to parse provider response: %s", err)
        logger.debug("Raw response: %r", response)
        raise MalformedResponseError(INVALID_FORMAT_MESSAGE) from err


class APIClient(ABC):
    """Abstract base class for analysis provider clients.

    One call to ``analyze`` sends exactly one image with the fixed marketing
    prompt. No retries happen here; retry is the caller's decision.
    """

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the API client.

        Args:
            api_key: API key for the service. If None, will try to get from environment.
        """
        self.api_key = api_key
        self._validate_api_key()

    @abstractmethod
    def _validate_api_key(self) -> None:
        """Validate that the API key is available and properly configured."""
        pass

    @abstractmethod
    def _get_model_name(self) -> str:
        """Return the model name to use for this API."""
        pass

    @abstractmethod
    def _call_api(self, image_b64: str) -> Union[str, Dict[str, Any], None]:
        """Make the actual API call and return the response body.

        Args:
            image_b64: Base64-encoded JPEG image data

        Returns:
            Raw JSON text (or an already decoded dict) from the API

        Raises:
            TransportError: if the service could not be reached or rejected the call
        """
        pass

    @property
    def model_name(self) -> str:
        return self._get_model_name()

    def analyze(self, payload: bytes) -> AnalysisResult:
        """Analyze one encoded image.

        Args:
            payload: JPEG bytes produced by the image normalizer

        Returns:
            Validated analysis result

        Raises:
            TransportError: if the API call fails
            MalformedResponseError: if the response is empty or does not match the schema
        """
        image_b64 = base64.b64encode(payload).decode("ascii")
        try:
            response = self._call_api(image_b64)
        except ProviderError:
            raise
        except Exception as err:
            logger.error("%s request failed: %s", self.model_name, err)
            raise TransportError(f"{self.model_name} API error: {err}") from err
        return parse_response(response)

    async def analyze_async(self, payload: bytes) -> AnalysisResult:
        """Run ``analyze`` in the default executor so SDK calls do not block the loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.analyze, payload)
