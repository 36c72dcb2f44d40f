"""
Groq Structured Extraction Provider
Lead field extraction using Groq chat completions in JSON mode

Following Groq's official guidelines:
- https://console.groq.com/docs/text-chat#json-mode
- Low temperature for factual extraction
- Schema described in the system channel
"""
import os
import json
import asyncio
from typing import Any, Dict, Optional
from groq import AsyncGroq
from leadflow.domain.interfaces.extraction_provider import StructuredExtractionProvider, ExtractionError


class GroqExtractionProvider(StructuredExtractionProvider):
    """
    Groq provider returning JSON objects

    Recommended models for extraction:
    - llama-3.3-70b-versatile: Best quality/speed balance
    - llama-3.1-8b-instant: Fastest, acceptable for short emails
    """

    SYSTEM_PROMPT = (
        "Du udtrækker strukturerede data fra kundehenvendelser. "
        "Svar kun med et JSON-objekt der følger dette JSON schema:\n{schema}"
    )

    def __init__(self):
        self._client: Optional[AsyncGroq] = None
        self._config: dict = {}
        self._model: str = "llama-3.3-70b-versatile"
        self._temperature: float = 0.2  # Extraction should be deterministic
        self._max_tokens: int = 800
        self._timeout: float = 15.0

    async def initialize(self, config: dict) -> None:
        """Initialize Groq client with configuration"""
        self._config = config
        api_key = config.get("api_key")
        if not api_key or str(api_key).startswith("${"):
            api_key = os.getenv("GROQ_API_KEY")

        if not api_key:
            raise ValueError("Groq API key not found in config or environment")

        # Initialize async client
        self._client = AsyncGroq(api_key=api_key)

        self._model = config.get("model", "llama-3.3-70b-versatile")
        self._temperature = config.get("temperature", 0.2)
        self._max_tokens = config.get("max_tokens", 800)
        self._timeout = float(config.get("timeout_seconds", 15))

    async def extract_structured(self, prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ask Groq for a JSON object matching the schema

        Args:
            prompt: Extraction instructions with the email text
            schema: JSON schema of the lead fields

        Returns:
            Parsed JSON object

        Raises:
            ExtractionError: On API failure, timeout or non-JSON output
        """
        if not self._client:
            raise RuntimeError("Groq client not initialized. Call initialize() first.")

        messages = [
            {
                "role": "system",
                "content": self.SYSTEM_PROMPT.format(schema=json.dumps(schema, ensure_ascii=False))
            },
            {
                "role": "user",
                "content": prompt
            },
        ]

        try:
            completion = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    response_format={"type": "json_object"},
                ),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise ExtractionError(f"Groq extraction timed out after {self._timeout}s")
        except Exception as e:
            raise ExtractionError(f"Groq extraction failed: {str(e)}")

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ExtractionError("Groq returned an empty response")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Groq returned invalid JSON: {e}")

        if not isinstance(parsed, dict):
            raise ExtractionError(f"Groq returned {type(parsed).__name__}, expected an object")

        return parsed

    async def cleanup(self) -> None:
        """Release resources"""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def name(self) -> str:
        """Provider name"""
        return "groq"

    def __repr__(self) -> str:
        return f"GroqExtractionProvider(model={self._model}, temp={self._temperature})"
