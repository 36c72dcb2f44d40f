"""
Structured Extraction Provider Interface
Abstract base class for "analyze text, return a filled object" AI services
"""
from abc import ABC, abstractmethod
from typing import Any, Dict


class ExtractionError(Exception):
    """Raised when the extraction service is unreachable or returns unusable output."""
    def __init__(self, message: str = "Structured extraction failed"):
        self.message = message
        super().__init__(self.message)


class StructuredExtractionProvider(ABC):
    """Abstract base class for structured-extraction providers"""

    @abstractmethod
    async def initialize(self, config: dict) -> None:
        """Initialize the provider with configuration"""
        pass

    @abstractmethod
    async def extract_structured(self, prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill the target shape from the prompt.

        Args:
            prompt: Instructions plus the text to analyze
            schema: JSON schema of the expected object

        Returns:
            Best-effort filled object

        Raises:
            ExtractionError: If the call fails or the output cannot be parsed
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
