"""Gemini engine for sending prompts to the generative-text service."""

import logging
import aiohttp
from typing import Any, Dict

from ..exceptions import RequestFailed

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiEngine:
    """Simple engine for sending a prompt to Gemini and getting the raw response."""

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", base_url: str = DEFAULT_BASE_URL):
        """Initialize Gemini engine.

        Args:
            api_key: Gemini API key
            model: Gemini model to use for note generation
            base_url: REST endpoint root of the Generative Language API
        """
        if not api_key:
            raise ValueError("Gemini API key is required - cannot generate notes without credentials")
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/models/{model}:generateContent"

        logger.info(f"GeminiEngine initialized with model: {model}")

    async def generate_content(self, prompt: str) -> Dict[str, Any]:
        """Send a prompt to Gemini and return the decoded JSON response.

        Args:
            prompt: Prompt to send to Gemini

        Returns:
            The ``generateContent`` response body

        Raises:
            RequestFailed: If the service answers with a non-200 status
            aiohttp.ClientError: If the request cannot be completed
        """
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json"
        }

        data = {
            "contents": [
                {
                    "parts": [{"text": prompt}]
                }
            ]
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(self.url, headers=headers, json=data) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise RequestFailed(f"Gemini API error: {response.status} - {error_text}")

                return await response.json()
