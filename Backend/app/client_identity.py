"""
Who is booking and what for.

Picks the client's phone and name out of the user's own messages, matches a
stored ClientProfile by phone, and works out which service is being asked
for. Only user messages are read; the assistant's replies are never taken as
client data.
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .extraction import ChatRole, HistoryMessage

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"(?<!\d)(\d{10,11})(?!\d)")
PLACEHOLDER_PHONE_RE = re.compile(r"9999|0000|1111|1234")

_NAME_WORD = r"[A-ZÀ-Úa-zà-ú'\-]+"
_CAPITALIZED = r"[A-ZÀ-Ú][a-zà-ú]+"

# "meu nome é João Pereira", "me chamo Ana", "sou o Pedro, 11987654321"
EXPLICIT_NAME_RE = re.compile(
    r"(?:\bmeu\s+nome\s+(?:é|e|eh)\s+|\bme\s+chamo\s+|\bsou\s+o\s+|\bsou\s+a\s+|\bsou\s+)"
    rf"({_NAME_WORD}(?:\s+{_NAME_WORD}){{0,4}})"
    r"(?=\s*,|\s+e\s+(?:meu|o)\b|\s*$|\s+(?:número|numero|telefone|celular|whats|ddd)|\s+\d)",
    re.IGNORECASE,
)
# "João Pereira e meu telefone é 11987654321"
NAME_AND_PHONE_RE = re.compile(
    rf"^({_CAPITALIZED}(?:\s+{_CAPITALIZED}){{0,3}})\s+e\s+(?:meu\s+)?"
    r"(?:número|numero|telefone|celular)?\s*(?:é\s+)?(\d{10,11})\b",
    re.IGNORECASE,
)
# "João Pereira, 11987654321"
NAME_COMMA_PHONE_RE = re.compile(
    rf"^({_CAPITALIZED}(?:\s+{_CAPITALIZED}){{0,3}})\s*,\s*(\d{{10,11}})\b", re.IGNORECASE
)
# "João Pereira 11987654321"
NAME_SPACE_PHONE_RE = re.compile(
    rf"^({_CAPITALIZED}(?:\s+{_CAPITALIZED}){{0,3}})\s+(\d{{10,11}})\b", re.IGNORECASE
)
NAME_WITH_PHONE_PATTERNS = (NAME_AND_PHONE_RE, NAME_COMMA_PHONE_RE, NAME_SPACE_PHONE_RE)

COMMON_RESPONSES = frozenset({
    "sim", "pode sim", "pode", "ok", "okay", "beleza", "perfeito",
    "ótimo", "otimo", "certo", "certeza", "com certeza", "claro",
    "claro que sim", "isso mesmo", "exato", "correto",
    "não", "nao", "nunca", "jamais",
    "obrigado", "obrigada", "valeu", "ok valeu", "brigado",
    "oi", "olá", "ola", "bom dia", "boa tarde", "boa noite",
    "tá", "ta", "tá bom", "ta bom", "tudo bem", "de boa",
    "show", "legal", "massa", "top", "blz",
})
TEST_NAME_RE = re.compile(r"^(test|teste|cliente|usuario|user|fulano|ciclano)", re.IGNORECASE)
GENERIC_NAME_RE = re.compile(r"^(joão|maria)\s+(silva|santos)$", re.IGNORECASE)
# "tem horário com o Carlos" talks about an employee, not the client.
OTHER_PERSON_RE = re.compile(
    r"(?:tem\s+horário|tem\s+vaga|disponível|atende|pode\s+ser)\s+(?:com|o|a)\s+",
    re.IGNORECASE,
)


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def title_case(value: str) -> str:
    return " ".join(part[:1].upper() + part[1:].lower() for part in value.split())


def is_valid_phone(candidate: str) -> bool:
    return len(candidate) in (10, 11) and not PLACEHOLDER_PHONE_RE.search(candidate)


def _user_messages_newest_first(message: str, history: Sequence[HistoryMessage]) -> Iterable[str]:
    yield message
    for item in reversed(history):
        if item.role == ChatRole.USER:
            yield item.content


def extract_phone(message: str, history: Sequence[HistoryMessage] = ()) -> Optional[str]:
    """Most recent 10-11 digit run typed by the user that is not a placeholder."""
    for text in _user_messages_newest_first(message, history):
        for match in PHONE_RE.finditer(text):
            if is_valid_phone(match.group(1)):
                return match.group(1)
    return None


def _acceptable_name(candidate: str, max_words: int = 5) -> bool:
    parts = candidate.split()
    if not parts or len(parts) > max_words:
        return False
    if candidate.lower() in COMMON_RESPONSES:
        return False
    if TEST_NAME_RE.match(candidate) or GENERIC_NAME_RE.match(candidate):
        return False
    return True


def name_from_text(text: str) -> tuple[Optional[str], Optional[str]]:
    """
    Client name (and phone, when given together) from one user message.

    Returns (name, phone); either may be None.
    """
    stripped = text.strip()
    if stripped.lower() in COMMON_RESPONSES:
        return None, None

    explicit = EXPLICIT_NAME_RE.search(stripped)
    if explicit:
        if OTHER_PERSON_RE.search(stripped):
            logger.debug("Skipping name in message about someone else: %r", stripped)
        else:
            candidate = title_case(explicit.group(1).strip())
            if _acceptable_name(candidate):
                return candidate, None

    for pattern in NAME_WITH_PHONE_PATTERNS:
        match = pattern.match(stripped)
        if not match:
            continue
        candidate = title_case(match.group(1).strip())
        if _acceptable_name(candidate, max_words=4):
            phone = match.group(2) if is_valid_phone(match.group(2)) else None
            return candidate, phone
    return None, None


def extract_name(message: str, history: Sequence[HistoryMessage] = ()) -> Optional[str]:
    """Most recent client name given in the user's messages."""
    for text in _user_messages_newest_first(message, history):
        name, _ = name_from_text(text)
        if name:
            return name
    return None


def phone_variants(phone: str) -> set[str]:
    normalized = digits_only(phone)
    return {phone, normalized, f"+55{normalized}"}


def match_profile(profiles: Sequence, phone: str):
    """
    Find the stored profile for a phone number.

    Exact or country-code variants win; otherwise profiles are compared on
    their last 11, then last 10 digits.
    """
    if not phone:
        return None
    variants = phone_variants(phone)
    for profile in profiles:
        if profile.phone in variants or digits_only(profile.phone) in variants:
            return profile

    normalized = digits_only(phone)
    for width in (11, 10):
        if len(normalized) < width:
            continue
        tail = normalized[-width:]
        for profile in profiles:
            stored = digits_only(profile.phone)
            if len(stored) >= width and stored[-width:] == tail:
                return profile
    return None


@dataclass
class ClientIdentity:
    name: Optional[str] = None
    phone: Optional[str] = None
    profile: Optional[object] = None

    @property
    def returning(self) -> bool:
        return self.profile is not None


def identify_client(
    message: str,
    history: Sequence[HistoryMessage],
    profiles: Sequence = (),
) -> ClientIdentity:
    """
    Resolve name and phone for the booking.

    A recognised profile supplies the name. Otherwise the name comes from the
    messages, and a phone typed together with the name is used when no
    standalone phone was found.
    """
    identity = ClientIdentity(phone=extract_phone(message, history))

    if identity.phone:
        identity.profile = match_profile(profiles, identity.phone)
    if identity.profile is not None:
        identity.name = identity.profile.name
        logger.info("Recognised returning client %s", identity.profile.id)
        return identity

    for text in _user_messages_newest_first(message, history):
        name, phone = name_from_text(text)
        if name:
            identity.name = name
            if phone and not identity.phone:
                identity.phone = phone
            break
    return identity


def resolve_service(
    message: str,
    history: Sequence[HistoryMessage],
    services: Sequence,
    fallback_name: Optional[str] = None,
):
    """
    Service being booked.

    The only active service when there is one, else the longest service name
    found in the user's messages (newest first), else the service named in
    `fallback_name` (taken from the last recap).
    """
    if len(services) == 1:
        return services[0]

    by_length = sorted(services, key=lambda s: len(s.name), reverse=True)
    for text in _user_messages_newest_first(message, history):
        lowered = text.lower()
        for service in by_length:
            if service.name.lower() in lowered:
                return service

    if fallback_name:
        wanted = fallback_name.strip().lower()
        for service in services:
            if service.name.lower() == wanted:
                return service
    return None
