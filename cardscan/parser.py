import re
import logging
from dataclasses import dataclass
from typing import Dict, Any, Callable, List, Tuple

logger = logging.getLogger(__name__)


# =========================
# DATA MODEL
# =========================

FIELD_NAMES = (
    "full_name",
    "designation",
    "company",
    "email",
    "phone",
    "website",
    "address",
)


@dataclass(frozen=True)
class ParsedContactFields:
    full_name: str = ""
    designation: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    website: str = ""
    address: str = ""
    # "keyword", "uppercase" or "" depending on which company rule fired
    company_source: str = ""

    @property
    def heuristic_confidence(self) -> float:
        """Fraction of contact fields the heuristics managed to fill."""
        found = sum(1 for name in FIELD_NAMES if getattr(self, name))
        return round(found / len(FIELD_NAMES), 2)

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in FIELD_NAMES}
        data["company_source"] = self.company_source
        data["heuristic_confidence"] = self.heuristic_confidence
        return data


# =========================
# PARSER
# =========================

class ContactParser:
    """Heuristic field guesser for raw business-card text.

    Runs an ordered list of independent passes over the card lines. Each
    pass sees the immutable line tuple plus whatever earlier passes found.
    Parsing is total: a missing signal yields an empty string.
    """

    COMPANY_KEYWORDS = (
        "ltd", "limited", "inc", "corp", "corporation", "llc", "pvt", "private"
    )
    ADDRESS_MAX_LENGTH = 200
    ADDRESS_SEPARATOR = ", "

    PATTERNS = {
        "email": re.compile(r"[a-zA-Z0-9._-]+@[a-zA-Z0-9._-]+\.[a-zA-Z0-9_-]+"),
        "phone": re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}"),
        "website": re.compile(
            r"(https?://)?(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
            r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)"
        ),
    }

    def __init__(self):
        self.passes: List[Tuple[str, Callable]] = [
            ("email", self._extract_email),
            ("phone", self._extract_phone),
            ("website", self._extract_website),
            ("full_name", self._extract_name),
            ("designation", self._extract_designation),
            ("company", self._extract_company),
            ("address", self._extract_address),
        ]

    # =========================
    # PIPELINE API
    # =========================

    def parse(self, text: str) -> ParsedContactFields:
        text = text or ""
        lines = tuple(line.strip() for line in text.split("\n") if line.strip())
        logger.debug(f"Parsing {len(lines)} lines")

        found: Dict[str, Any] = {"_name_index": None, "company_source": ""}
        for field_name, extract in self.passes:
            found[field_name] = extract(text, lines, found) or ""

        contact = ParsedContactFields(
            company_source=found["company_source"],
            **{name: found[name] for name in FIELD_NAMES}
        )
        logger.debug(f"Extracted - Name: {contact.full_name}, Company: {contact.company}")
        return contact

    # =========================
    # HELPERS
    # =========================

    def _is_contact_line(self, line: str) -> bool:
        return bool(self.PATTERNS["email"].search(line) or self.PATTERNS["phone"].search(line))

    def _extract_email(self, text: str, lines, found) -> str:
        m = self.PATTERNS["email"].search(text)
        return m.group(0).lower() if m else ""

    def _extract_phone(self, text: str, lines, found) -> str:
        m = self.PATTERNS["phone"].search(text)
        return m.group(0) if m else ""

    def _extract_website(self, text: str, lines, found) -> str:
        for m in self.PATTERNS["website"].finditer(text):
            url = m.group(0)
            if "@" not in url:
                return url
        return ""

    def _extract_name(self, text: str, lines, found) -> str:
        for index, line in enumerate(lines):
            if not self._is_contact_line(line):
                found["_name_index"] = index
                return line
        return ""

    def _extract_designation(self, text: str, lines, found) -> str:
        name_index = found["_name_index"]
        if name_index is None:
            return ""
        for line in lines[name_index + 1:]:
            if self._is_contact_line(line):
                continue
            if "www" in line or "http" in line:
                continue
            return line
        return ""

    def _extract_company(self, text: str, lines, found) -> str:
        for line in lines:
            if self._is_contact_line(line):
                continue
            lower = line.lower()
            if any(keyword in lower for keyword in self.COMPANY_KEYWORDS):
                found["company_source"] = "keyword"
                return line
            # Lines without letters count as upper-case too
            if line == line.upper() and len(line) > 2:
                found["company_source"] = "uppercase"
                return line
        return ""

    def _extract_address(self, text: str, lines, found) -> str:
        used = [
            found[name] for name in
            ("full_name", "designation", "company", "email", "phone", "website")
            if found.get(name)
        ]
        remaining = [line for line in lines if not any(value in line for value in used)]
        return self.ADDRESS_SEPARATOR.join(remaining)[:self.ADDRESS_MAX_LENGTH]
