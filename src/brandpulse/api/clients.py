"""
API client implementations for various AI services.

This module provides concrete implementations of API clients for different AI services,
all inheriting from the base APIClient class for unified interface.
"""

import os
import base64
import copy
import json
from typing import Optional

import anthropic
from openai import OpenAI
import google.generativeai as genai

from ..core.errors import TransportError
from ..utils.log_utils import get_logger
from .base import APIClient
from .prompt import PROMPT_TEMPLATE

logger = get_logger(__name__)

with open(os.path.join(os.path.dirname(__file__), 'json_structure.json'), encoding='utf-8') as _f:
    SCHEMA_DATA = json.load(_f)

# 10 taglines plus 50 scored keywords need far more room than a short classification
MAX_OUTPUT_TOKENS = 8192


class GeminiClient(APIClient):
    """Client for Google's Gemini API. Default provider."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gemini-2.5-flash"):
        """Initialize Gemini client.

        Args:
            api_key: Google API key. If None, uses GOOGLE_API_KEY (or GEMINI_API_KEY) env var.
            model: Model name to use (default: gemini-2.5-flash)
        """
        self.model = model
        super().__init__(api_key)

    def _validate_api_key(self) -> None:
        """Validate Google API key."""
        key = self.api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if not key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")
        self.api_key = key
        genai.configure(api_key=key)

    def _get_model_name(self) -> str:
        """Return Gemini model name."""
        return self.model

    @staticmethod
    def _response_schema() -> dict:
        # Gemini's schema dialect rejects these JSON schema keywords
        unsupported_fields = {'additionalProperties', 'strict'}

        def strip(obj):
            if isinstance(obj, dict):
                return {
                    k: (v.upper() if k == "type" and isinstance(v, str) else strip(v))
                    for k, v in obj.items() if k not in unsupported_fields
                }
            if isinstance(obj, list):
                return [strip(item) for item in obj]
            return obj

        return strip(copy.deepcopy(SCHEMA_DATA["schema"]))

    def _call_api(self, image_b64: str) -> str:
        """Make API call to Gemini with structured output."""
        try:
            model = genai.GenerativeModel(
                self.model,
                generation_config={
                    "candidate_count": 1,
                    "max_output_tokens": MAX_OUTPUT_TOKENS,
                    "response_mime_type": "application/json",
                    "response_schema": self._response_schema(),
                }
            )
            response = model.generate_content([
                {
                    "mime_type": "image/jpeg",
                    "data": base64.b64decode(image_b64)
                },
                PROMPT_TEMPLATE,
            ])
            # .text raises when the candidate was blocked or has no parts
            return response.text
        except Exception as err:
            logger.error("Gemini API request failed: %s", err)
            raise TransportError(f"Gemini API error: {err}") from err


class OpenAIClient(APIClient):
    """Client for OpenAI's GPT API."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-5-nano"):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key. If None, uses OPENAI_API_KEY env var.
            model: Model name to use (default: gpt-5-nano)
        """
        self.model = model
        super().__init__(api_key)

    def _validate_api_key(self) -> None:
        """Validate OpenAI API key."""
        key = self.api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            raise ValueError("OPENAI_API_KEY environment variable not set")
        self.api_key = key
        self.client = OpenAI(api_key=key)

    def _get_model_name(self) -> str:
        """Return OpenAI model name."""
        return self.model

    def _call_api(self, image_b64: str) -> Optional[str]:
        """Make API call to OpenAI with structured output."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": PROMPT_TEMPLATE},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"}
                            }
                        ]
                    }
                ],
                max_completion_tokens=MAX_OUTPUT_TOKENS,
                response_format={
                    "type": "json_schema",
                    "json_schema": SCHEMA_DATA
                }
            )
            return response.choices[0].message.content
        except Exception as err:
            logger.error("OpenAI API request failed: %s", err)
            raise TransportError(f"OpenAI API error: {err}") from err


class ClaudeClient(APIClient):
    """Client for Anthropic's Claude API."""

    def __init__(self, api_key: Optional[str] = None, model: str = "claude-3-5-haiku-20241022"):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key. If None, uses ANTHROPIC_API_KEY env var.
            model: Model name to use (default: claude-3-5-haiku-20241022)
        """
        self.model = model
        super().__init__(api_key)

    def _validate_api_key(self) -> None:
        """Validate Anthropic API key."""
        key = self.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")
        self.api_key = key
        self.client = anthropic.Anthropic(api_key=key)

    def _get_model_name(self) -> str:
        """Return Claude model name."""
        return self.model

    def _call_api(self, image_b64: str):
        """Make API call to Claude, forcing a tool call so the output follows the schema."""
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=MAX_OUTPUT_TOKENS,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": "image/jpeg",
                                    "data": image_b64
                                }
                            },
                            {
                                "type": "text",
                                "text": PROMPT_TEMPLATE
                            }
                        ]
                    }
                ],
                tools=[
                    {
                        "name": SCHEMA_DATA["name"],
                        "description": "Record the marketing analysis of the image.",
                        "input_schema": SCHEMA_DATA["schema"]
                    }
                ],
                tool_choice={"type": "tool", "name": SCHEMA_DATA["name"]}
            )
        except Exception as err:
            logger.error("Claude API request failed: %s", err)
            raise TransportError(f"Claude API error: {err}") from err

        for block in response.content:
            if block.type == "tool_use":
                return block.input
        # no tool call: fall back to whatever text came back
        return "".join(block.text for block in response.content if block.type == "text")


def get_client(api_name: str, **kwargs) -> APIClient:
    """Factory function to create API client instances.

    Args:
        api_name: Name of the API ('gemini', 'openai', 'claude')
        **kwargs: Additional arguments passed to the client constructor

    Returns:
        Configured API client instance
    """
    api_name = api_name.lower()
    if api_name == "gemini":
        return GeminiClient(**kwargs)
    elif api_name == "openai":
        return OpenAIClient(**kwargs)
    elif api_name == "claude":
        return ClaudeClient(**kwargs)
    else:
        raise ValueError(f"Unsupported API: {api_name}")
