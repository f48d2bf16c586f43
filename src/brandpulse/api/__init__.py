"""
Analysis provider adapters.

This module provides a unified interface for the supported vision APIs through
client classes that turn one encoded image into one AnalysisResult.
"""

from .base import APIClient, parse_response
from .clients import ClaudeClient, OpenAIClient, GeminiClient, get_client
from .prompt import PROMPT_TEMPLATE, MarketingAnalysisResponse

AVAILABLE_APIS = ("gemini", "openai", "claude")

__all__ = [
    "APIClient",
    "ClaudeClient",
    "OpenAIClient",
    "GeminiClient",
    "get_client",
    "parse_response",
    "AVAILABLE_APIS",
    "PROMPT_TEMPLATE",
    "MarketingAnalysisResponse",
]
