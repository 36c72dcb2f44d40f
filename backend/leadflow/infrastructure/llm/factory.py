"""
Extraction Provider Factory
"""
from typing import Dict, Type
from leadflow.domain.interfaces.extraction_provider import StructuredExtractionProvider
from leadflow.infrastructure.llm.groq import GroqExtractionProvider


class ExtractionProviderFactory:
    """Factory for creating structured-extraction provider instances"""

    _providers: Dict[str, Type[StructuredExtractionProvider]] = {
        "groq": GroqExtractionProvider,
    }

    @classmethod
    async def create(cls, provider_name: str, config: dict) -> StructuredExtractionProvider:
        """Create and initialize a provider instance"""
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown extraction provider: {provider_name}. Available: {available}")

        provider = cls._providers[provider_name]()
        await provider.initialize(config)
        return provider

    @classmethod
    def register(cls, name: str, provider_class: Type[StructuredExtractionProvider]) -> None:
        """Register a provider"""
        cls._providers[name] = provider_class

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available providers"""
        return list(cls._providers.keys())
