"""
Heuristic Lead Extraction
Keyword and regex based extraction used when the AI service is unavailable.
"""
import math
import re
import logging
from typing import Dict, List, Optional, Tuple

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

logger = logging.getLogger(__name__)

# Bump when SERVICE_KEYWORDS, CITIES or the priority keywords change
KEYWORD_TABLE_VERSION = 1

# Checked in order; the first service with a matching keyword wins
SERVICE_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("Kontorrengøring", ["kontor", "office", "arbejdsplads", "firma"]),
    ("Hjemmerengøring", ["hjem", "lejlighed", "hus", "bolig", "privat"]),
    ("Vinduespolering", ["vinduer", "ruder", "vinduespolering"]),
    ("Dybderengøring", ["dybde", "grundig", "flytterengøring", "totalrengøring"]),
    ("Erhvervsrengøring", ["erhverv", "butik", "restaurant", "hotel"]),
]

CITIES: List[str] = [
    "København", "Aarhus", "Odense", "Aalborg", "Esbjerg",
    "Randers", "Kolding", "Horsens", "Vejle", "Roskilde",
]

HIGH_PRIORITY_KEYWORDS = ["akut", "hurtigt", "i dag", "asap", "vigtigt", "deadline"]
LOW_PRIORITY_KEYWORDS = ["når det passer", "ikke travlt", "fleksibel"]

# Hours used when the email names no duration, by keyword
KEYWORD_HOURS: List[Tuple[List[str], float]] = [
    (["kontor"], 6),
    (["hjem", "lejlighed"], 3),
    (["vinduer"], 2),
    (["dybde"], 8),
]

SQUARE_METERS_PER_HOUR = 25

_NAME_WORD = r"[A-Za-zÆØÅæøåÉéÜüÖöÄä\-]+"
NAME_PATTERNS = [
    re.compile(rf"mit navn er\s+({_NAME_WORD}(?:[ ]{_NAME_WORD}){{0,3}})", re.IGNORECASE),
    re.compile(rf"jeg hedder\s+({_NAME_WORD}(?:[ ]{_NAME_WORD}){{0,3}})", re.IGNORECASE),
    re.compile(rf"navn\s*:\s*({_NAME_WORD}(?:[ ]{_NAME_WORD}){{0,3}})", re.IGNORECASE),
    re.compile(rf"hilsen,?\s+({_NAME_WORD}(?:[ ]{_NAME_WORD}){{0,3}})", re.IGNORECASE),
]
EMAIL_PATTERN = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
PHONE_PATTERNS = [
    re.compile(r"(\+45\s?\d{2}\s?\d{2}\s?\d{2}\s?\d{2})(?!\d)"),
    re.compile(r"(?<![\d+])(\d{8})(?!\d)"),
    re.compile(r"(?<![\d+])(\d{2}\s\d{2}\s\d{2}\s\d{2})(?!\d)"),
]
ADDRESS_PATTERNS = [
    re.compile(r"adresse\s*[:\s]\s*([^,\n]+)", re.IGNORECASE),
    re.compile(r"bor på\s+([^,\n]+)", re.IGNORECASE),
    re.compile(
        r"([A-ZÆØÅ][a-zæøå]*(?:gade|vej|allé|alle|plads|stræde|torv|vænge|boulevard)\s+\d+[A-Za-z]?)",
    ),
]
POSTAL_CODE_PATTERN = re.compile(r"(?<!\d)(\d{4})\s+[A-ZÆØÅ][a-zæøå]+")
HOURS_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*timer?\b", re.IGNORECASE)
AREA_PATTERN = re.compile(r"(\d+)\s*(?:m2|m²|kvm)\b", re.IGNORECASE)

NOTES_MAX_LENGTH = 200


def _name_words(captured: str) -> str:
    """Keep the leading capitalised words of a captured name ('Lars Nielsen og jeg' -> 'Lars Nielsen')"""
    words = captured.split()
    kept = words[:1]
    for word in words[1:]:
        if not word[0].isupper():
            break
        kept.append(word)
    return " ".join(kept)


def extract_customer_name(text: str) -> Optional[str]:
    for pattern in NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            return _name_words(match.group(1).strip())
    return None


def extract_email(text: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(text)
    return match.group(1) if match else None


def extract_phone(text: str) -> Optional[str]:
    for pattern in PHONE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_address(text: str) -> Optional[str]:
    for pattern in ADDRESS_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def extract_city(text: str) -> Optional[str]:
    lowered = text.lower()
    for city in CITIES:
        if city.lower() in lowered:
            return city
    return None


def extract_postal_code(text: str) -> Optional[str]:
    match = POSTAL_CODE_PATTERN.search(text)
    return match.group(1) if match else None


def detect_service_type(text: str) -> str:
    lowered = text.lower()
    for service, keywords in SERVICE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return service
    return DEFAULT_SERVICE_TYPE


def estimate_hours(text: str, default_hours: float) -> float:
    """
    Hours named in the text ('3 timer'), else area based (25 m2 per hour),
    else a per-service guess, else default_hours.
    """
    match = HOURS_PATTERN.search(text)
    if match:
        hours = float(match.group(1).replace(",", "."))
        if math.isfinite(hours) and hours > 0:
            return hours

    match = AREA_PATTERN.search(text)
    if match:
        try:
            hours = math.ceil(int(match.group(1)) / SQUARE_METERS_PER_HOUR)
        except (OverflowError, ValueError):
            hours = 0
        if hours > 0:
            return float(hours)

    lowered = text.lower()
    for keywords, hours in KEYWORD_HOURS:
        if any(keyword in lowered for keyword in keywords):
            return float(hours)

    return float(default_hours)


def determine_priority(text: str) -> LeadPriority:
    lowered = text.lower()
    if any(keyword in lowered for keyword in HIGH_PRIORITY_KEYWORDS):
        return LeadPriority.HIGH
    if any(keyword in lowered for keyword in LOW_PRIORITY_KEYWORDS):
        return LeadPriority.LOW
    return LeadPriority.MEDIUM


class HeuristicLeadExtractor:
    """
    Builds a complete LeadDraft from raw text without any external call.

    The result is always marked low confidence so a human reviews it.
    """

    def __init__(self, default_hours: float = 4.0):
        self.default_hours = default_hours

    def scrape(self, text: str) -> Dict[str, Optional[str]]:
        """Raw field matches, None where nothing was found"""
        return {
            "customer_name": extract_customer_name(text),
            "customer_email": extract_email(text),
            "customer_phone": extract_phone(text),
            "address": extract_address(text),
            "city": extract_city(text),
            "postal_code": extract_postal_code(text),
        }

    def extract(self, raw_email_text: Optional[str], source: LeadSource) -> LeadDraft:
        """
        Extract a lead draft from raw email text.

        Args:
            raw_email_text: Email body, may be empty
            source: Where the email came from

        Returns:
            Fully populated LeadDraft (placeholders where nothing matched)
        """
        text = raw_email_text or ""
        found = self.scrape(text)
        warnings: List[str] = []

        for field_name, placeholder in (
            ("customer_name", PLACEHOLDER_NAME),
            ("address", PLACEHOLDER_ADDRESS),
            ("city", PLACEHOLDER_CITY),
        ):
            if not found[field_name]:
                found[field_name] = placeholder
                warnings.append(f"{field_name} not found, using placeholder")

        if not found["customer_email"] and not found["customer_phone"]:
            warnings.append("no contact details found")

        draft = LeadDraft(
            customer_name=found["customer_name"],
            customer_email=found["customer_email"] or "",
            customer_phone=found["customer_phone"] or "",
            service_type=detect_service_type(text),
            address=found["address"],
            city=found["city"],
            postal_code=found["postal_code"] or "",
            estimated_hours=estimate_hours(text, self.default_hours),
            priority=determine_priority(text),
            notes=text.strip()[:NOTES_MAX_LENGTH],
            source=source,
            extraction_method=ExtractionMethod.HEURISTIC,
            low_confidence=True,
            analysis="Lead kræver manuel gennemgang.",
            warnings=warnings,
        )

        logger.info(
            f"Heuristic extraction (keywords v{KEYWORD_TABLE_VERSION}): "
            f"service={draft.service_type}, city={draft.city}, hours={draft.estimated_hours}"
        )
        return draft
