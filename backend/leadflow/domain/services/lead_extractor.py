"""
Lead Extractor
Turns a raw inquiry email into a LeadDraft.

The AI provider is tried first. Its output is validated field by field and
anything missing or malformed is replaced by a default. When the provider is
absent, fails, times out or returns garbage, the heuristic extractor takes
over so intake never fails.
"""
import math
import re
import logging
from typing import Any, Dict, List, Optional

from leadflow.domain.interfaces.extraction_provider import StructuredExtractionProvider
from leadflow.domain.models.lead import (
    LeadDraft,
    LeadSource,
    LeadPriority,
    ExtractionMethod,
    PLACEHOLDER_NAME,
    PLACEHOLDER_ADDRESS,
    PLACEHOLDER_CITY,
    DEFAULT_SERVICE_TYPE,
)
from leadflow.domain.services.lead_heuristics import HeuristicLeadExtractor

logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

EXTRACTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "customerName": {"type": "string"},
        "customerEmail": {"type": "string"},
        "customerPhone": {"type": "string"},
        "serviceType": {"type": "string"},
        "address": {"type": "string"},
        "city": {"type": "string"},
        "postalCode": {"type": "string"},
        "estimatedHours": {"type": "number"},
        "priority": {"type": "string", "enum": ["low", "medium", "high"]},
        "notes": {"type": "string"},
        "analysis": {"type": "string"},
    },
    "required": ["customerName", "serviceType", "estimatedHours"],
}

EXTRACTION_PROMPT = """Analyser denne email fra en potentiel kunde til Rendetalje (rengøringsfirma).

{header}Email indhold:
{email}

Udtræk følgende information:
- customerName: Kundens fulde navn
- customerEmail: Email adresse
- customerPhone: Telefonnummer
- serviceType: Type rengøring (Kontorrengøring, Hjemmerengøring, Vinduespolering, Dybderengøring, Erhvervsrengøring eller Generel rengøring)
- address, postalCode, city: Adresse, postnummer og by
- estimatedHours: Estimeret antal timer
- priority: low, medium eller high
- notes: Særlige ønsker
- analysis: Kort vurdering af henvendelsen

Retningslinjer for timer (timepris {hourly_rate} kr):
- Kontorrengøring: 2-6 timer afhængig af størrelse
- Hjemmerengøring: 2-4 timer
- Vinduespolering: 1-3 timer
- Dybderengøring: 4-8 timer

Udelad felter du ikke kan finde i emailen."""


def build_prompt(
    raw_email_text: str,
    subject: Optional[str] = None,
    sender: Optional[str] = None,
    hourly_rate: float = 349
) -> str:
    """Danish extraction prompt for the AI provider"""
    header = ""
    if sender:
        header += f"Afsender: {sender}\n"
    if subject:
        header += f"Emne: {subject}\n"
    if header:
        header += "\n"
    return EXTRACTION_PROMPT.format(
        header=header,
        email=raw_email_text,
        hourly_rate=f"{hourly_rate:g}",
    )


def _clean(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value).strip()


def _coerce_hours(value: Any) -> Optional[float]:
    """Positive finite hours from a number or numeric string, else None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        hours = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(hours) or hours <= 0:
        return None
    return hours


class LeadExtractor:
    """
    AI-first lead extraction with a heuristic fallback.

    Usage:
        extractor = LeadExtractor(provider, default_hours=4)
        draft = await extractor.extract(body, LeadSource.LEADMAIL)
    """

    def __init__(
        self,
        provider: Optional[StructuredExtractionProvider],
        default_hours: float = 4.0,
        hourly_rate: float = 349.0
    ):
        self.provider = provider
        self.default_hours = default_hours
        self.hourly_rate = hourly_rate
        self.heuristics = HeuristicLeadExtractor(default_hours=default_hours)

    async def extract(
        self,
        raw_email_text: Optional[str],
        source: LeadSource,
        subject: Optional[str] = None,
        sender: Optional[str] = None
    ) -> LeadDraft:
        """
        Extract a lead draft from an inquiry email.

        Args:
            raw_email_text: Email body
            source: Inquiry channel
            subject: Email subject, given to the AI as context
            sender: From address, used when the body holds no email

        Returns:
            LeadDraft; never raises for bad input or AI failures
        """
        text = raw_email_text or ""
        source = LeadSource(source)

        if self.provider is None:
            logger.info("No extraction provider configured, using heuristic extraction")
            return self._heuristic(text, source, sender)

        try:
            prompt = build_prompt(text, subject, sender, self.hourly_rate)
            data = await self.provider.extract_structured(prompt, EXTRACTION_SCHEMA)
        except Exception as e:
            logger.warning(f"AI extraction via {self.provider.name} failed, falling back to heuristics: {e}")
            return self._heuristic(text, source, sender)

        if not isinstance(data, dict):
            logger.warning(f"AI extraction returned {type(data).__name__}, falling back to heuristics")
            return self._heuristic(text, source, sender)

        # Older prompts wrapped the fields in a leadData object
        if isinstance(data.get("leadData"), dict):
            data = {**data["leadData"], "analysis": data.get("analysis")}

        return self._validate(data, text, source, sender)

    def _heuristic(self, text: str, source: LeadSource, sender: Optional[str]) -> LeadDraft:
        draft = self.heuristics.extract(text, source)
        if not draft.customer_email and sender and _EMAIL.match(sender.strip()):
            draft = draft.model_copy(update={"customer_email": sender.strip()})
        return draft

    def _validate(
        self,
        data: Dict[str, Any],
        text: str,
        source: LeadSource,
        sender: Optional[str]
    ) -> LeadDraft:
        """Build a draft from AI output, repairing missing or malformed fields"""
        warnings: List[str] = []
        scraped = self.heuristics.scrape(text)

        def pick(key: str, scraped_key: str, placeholder: str) -> str:
            value = _clean(data.get(key))
            if value:
                return value
            value = scraped.get(scraped_key) or ""
            if value:
                warnings.append(f"{key} missing from AI output, taken from text")
                return value
            if placeholder:
                warnings.append(f"{key} missing, using placeholder")
            return placeholder

        customer_name = pick("customerName", "customer_name", PLACEHOLDER_NAME)
        address = pick("address", "address", PLACEHOLDER_ADDRESS)
        city = pick("city", "city", PLACEHOLDER_CITY)
        postal_code = pick("postalCode", "postal_code", "")
        customer_phone = pick("customerPhone", "customer_phone", "")

        customer_email = pick("customerEmail", "customer_email", "")
        if customer_email and not _EMAIL.match(customer_email):
            warnings.append(f"discarded malformed email '{customer_email}'")
            customer_email = ""
        if not customer_email and sender and _EMAIL.match(sender.strip()):
            customer_email = sender.strip()

        service_type = _clean(data.get("serviceType")) or DEFAULT_SERVICE_TYPE

        hours = _coerce_hours(data.get("estimatedHours"))
        if hours is None:
            logger.warning(
                f"AI returned unusable estimatedHours {data.get('estimatedHours')!r}, "
                f"using default {self.default_hours}"
            )
            warnings.append("estimatedHours invalid, using default")
            hours = float(self.default_hours)

        try:
            priority = LeadPriority(_clean(data.get("priority")).lower())
        except ValueError:
            priority = LeadPriority.MEDIUM

        if warnings:
            logger.info(f"AI extraction repaired {len(warnings)} field(s): {warnings}")

        return LeadDraft(
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            service_type=service_type,
            address=address,
            city=city,
            postal_code=postal_code,
            estimated_hours=hours,
            priority=priority,
            notes=_clean(data.get("notes")),
            source=source,
            extraction_method=ExtractionMethod.AI,
            low_confidence=False,
            analysis=_clean(data.get("analysis")) or None,
            warnings=warnings,
        )
