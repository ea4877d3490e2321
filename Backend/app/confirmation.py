"""
Confirmation gate.

A booking is only written after the client has seen a recap of every field
and answered it with a confirmation keyword, and only if nothing changed
since that recap. The recap lives in the conversation history, so the gate
recovers its state from the assistant's previous messages.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import NamedTuple, Optional, Sequence

from .business_time import format_date_long, format_date_short
from .extraction import ChatRole, HistoryMessage

logger = logging.getLogger(__name__)

RECAP_MARKER = "📋"

CONFIRMATION_RE = re.compile(
    r"\b(?:sim|confirmo|confirma|est[aá] certo|correto|pode criar|t[aá] bom|ok|"
    r"isso mesmo|exato|perfeito)\b",
    re.IGNORECASE,
)
# A refusal never confirms, even when it repeats a keyword ("não, não está correto").
NEGATION_RE = re.compile(r"\b(?:n[ãa]o|nunca|errad[oa])\b", re.IGNORECASE)

# Phrases that only appear once an appointment has been written.
SUCCESS_MARKERS = (
    "✅ Agendamento confirmado",
    "marcado com sucesso",
    "você está agendado",
    "Até lá!",
)

# Claims a free-form reply must never make before the booking exists.
SUCCESS_CLAIMS = (
    "confirmado",
    "agendamento criado",
    "está agendado",
    "agendei",
    "marquei",
    "reservado",
    "seu horário está garantido",
)

QUESTION_CUES = (
    "tem vaga",
    "tem horário",
    "tem horario",
    "tem as",
    "tem às",
    "tem os",
    "tem aos",
    "tá livre",
    "ta livre",
    "está livre",
    "esta livre",
    "disponível",
    "disponivel",
    "tem como",
    "dá pra",
    "da pra",
    "rola",
    "consegue",
)

RECAP_LINE_RE = {
    "date": re.compile(r"^📅 Data:\s*(.+?)\s*$", re.MULTILINE),
    "time": re.compile(r"^⏰ Horário:\s*(.+?)\s*$", re.MULTILINE),
    "service": re.compile(r"^💈 Serviço:\s*(.+?)\s*$", re.MULTILINE),
    "employee": re.compile(r"^👨‍💼 Profissional:\s*(.+?)\s*$", re.MULTILINE),
}

RACE_LOST_MESSAGE = "❌ Ops! Esse horário acabou de ser ocupado. Por favor, escolha outro horário."
COMMIT_FAILED_MESSAGE = "Desculpe, ocorreu um erro ao criar o agendamento. Tente novamente."


@dataclass(frozen=True)
class BookingDraft:
    """Everything gathered so far for one booking."""
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    service_name: Optional[str] = None
    employee_name: Optional[str] = None
    appointment_date: Optional[date] = None
    time: Optional[str] = None

    @property
    def date_label(self) -> Optional[str]:
        if self.appointment_date is None:
            return None
        return format_date_long(self.appointment_date)

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.client_name:
            missing.append("**nome completo**")
        if not self.client_phone:
            missing.append("**telefone com DDD (10 ou 11 dígitos)**")
        if not self.service_name:
            missing.append("**serviço desejado**")
        if not self.employee_name:
            missing.append("**profissional disponível**")
        if not self.time:
            missing.append("**horário**")
        if not self.appointment_date:
            missing.append("**data**")
        return missing

    @property
    def complete(self) -> bool:
        return not self.missing_fields()


@dataclass(frozen=True)
class RecapValues:
    """Field values shown in a recap message."""
    date: Optional[str] = None
    time: Optional[str] = None
    service: Optional[str] = None
    employee: Optional[str] = None


class FieldChange(NamedTuple):
    field: str
    value: str

    @property
    def line(self) -> str:
        icon, label = CHANGE_LABELS[self.field]
        return f"{icon} **{label}**: {self.value}"


CHANGE_LABELS = {
    "date": ("📅", "Data"),
    "time": ("⏰", "Horário"),
    "service": ("💈", "Serviço"),
    "employee": ("👨‍💼", "Profissional"),
}


# ────────────────────────────────────────────────────────────────
# Reading the conversation
# ────────────────────────────────────────────────────────────────

def is_confirmation(message: str) -> bool:
    message = message or ""
    if NEGATION_RE.search(message):
        return False
    return CONFIRMATION_RE.search(message) is not None


def is_success_message(content: str) -> bool:
    return any(marker in content for marker in SUCCESS_MARKERS)


def is_recap(content: str) -> bool:
    return RECAP_MARKER in content and RECAP_LINE_RE["time"].search(content) is not None


def parse_recap(content: str) -> RecapValues:
    values = {}
    for name, pattern in RECAP_LINE_RE.items():
        match = pattern.search(content)
        values[name] = match.group(1) if match else None
    return RecapValues(**values)


def find_pending_recap(history: Sequence[HistoryMessage]) -> Optional[RecapValues]:
    """
    The last recap still waiting for an answer.

    A success message newer than the last recap means that booking is done
    and the client is starting a new one.
    """
    for item in reversed(history):
        if item.role != ChatRole.ASSISTANT:
            continue
        if is_success_message(item.content):
            return None
        if is_recap(item.content):
            return parse_recap(item.content)
    return None


def detect_changes(previous: RecapValues, draft: BookingDraft) -> list[FieldChange]:
    """Fields whose current value differs from what the recap showed."""
    current = {
        "date": draft.date_label,
        "time": draft.time,
        "service": draft.service_name,
        "employee": draft.employee_name,
    }
    changes = []
    for name in ("date", "time", "service", "employee"):
        shown = getattr(previous, name)
        value = current[name]
        if shown and value and shown != value:
            changes.append(FieldChange(name, value))
    if changes:
        logger.info("Booking changed since recap: %s", ", ".join(c.field for c in changes))
    return changes


def is_availability_question(message: str) -> bool:
    lowered = (message or "").lower()
    if any(cue in lowered for cue in QUESTION_CUES):
        return True
    if "?" in lowered:
        return any(word in lowered for word in ("hora", "dia", "data")) or re.search(
            r"\d{1,2}", lowered
        ) is not None
    return False


# ────────────────────────────────────────────────────────────────
# Replies
# ────────────────────────────────────────────────────────────────

def _recap_lines(draft: BookingDraft) -> str:
    return (
        f"👤 Nome: {draft.client_name}\n"
        f"📱 Telefone: {draft.client_phone}\n"
        f"💈 Serviço: {draft.service_name}\n"
        f"👨‍💼 Profissional: {draft.employee_name}\n"
        f"📅 Data: {draft.date_label}\n"
        f"⏰ Horário: {draft.time}"
    )


def build_recap(draft: BookingDraft) -> str:
    return (
        "📋 Perfeito! Vou confirmar os dados do seu agendamento:\n\n"
        f"{_recap_lines(draft)}\n\n"
        'Está tudo correto? Responda "SIM" para confirmar ou me avise o que precisa mudar.'
    )


def _answer_intro(changes: Sequence[FieldChange]) -> str:
    by_field = {change.field: change.value for change in changes}
    if "time" in by_field:
        return f"✅ Sim, {by_field['time']} está livre! Quer confirmar nesse horário?"
    if "date" in by_field:
        return f"✅ Sim, {by_field['date']} tem vaga! Quer confirmar?"
    if "service" in by_field:
        return f"✅ Sim, {by_field['service']} está disponível! Quer confirmar?"
    if "employee" in by_field:
        return f"✅ Sim, {by_field['employee']} tem horário! Quer confirmar?"
    return "✅ Sim, está disponível! Quer confirmar?"


def build_change_reply(message: str, changes: Sequence[FieldChange], draft: BookingDraft) -> str:
    """
    Acknowledge changes made after a recap and show the updated recap.

    Availability questions ("tem às 15?") get an answer, anything else is
    treated as an edit instruction.
    """
    change_lines = "\n".join(change.line for change in changes)
    if is_availability_question(message):
        intro = f"{_answer_intro(changes)}\n\n{change_lines}"
    else:
        intro = f"✅ Pode sim! Alterei:\n\n{change_lines}"
    return (
        f"{intro}\n\n"
        "📋 Veja os dados atualizados do seu agendamento:\n\n"
        f"{_recap_lines(draft)}\n\n"
        'Confirma agora? Responda "SIM" ou me avise se quer alterar algo.'
    )


def build_success_message(draft: BookingDraft) -> str:
    return (
        f"✅ Agendamento confirmado! {draft.client_name}, você está agendado(a) para "
        f"**{draft.date_label}** às {draft.time} com {draft.employee_name}. Até lá!"
    )


def build_missing_fields_message(missing: Sequence[str]) -> str:
    return (
        "⚠️ Desculpe, ainda não foi possível confirmar o agendamento.\n\n"
        f"Para finalizar, preciso que você me informe: {', '.join(missing)}.\n\n"
        "Por favor, forneça essas informações para eu poder confirmar seu agendamento! 😊"
    )


def build_no_employee_message(
    service_name: Optional[str],
    time: str,
    appointment_date: date,
    employee_names: Sequence[str],
) -> str:
    return (
        f"⚠️ Nenhum profissional está disponível para {service_name or 'este serviço'} "
        f"no horário {time} do dia {format_date_short(appointment_date)}.\n\n"
        f"Profissionais disponíveis: {', '.join(employee_names)}.\n\n"
        "Por favor, escolha outro horário ou especifique com qual profissional deseja agendar."
    )


def claims_success(text: str) -> bool:
    lowered = (text or "").lower()
    return any(claim in lowered for claim in SUCCESS_CLAIMS)


def guard_reply(text: str, draft: BookingDraft) -> str:
    """Replace a reply that claims a booking while fields are still missing."""
    missing = draft.missing_fields()
    if missing and claims_success(text):
        logger.warning("Reply claimed a booking with fields missing: %s", missing)
        return build_missing_fields_message(missing)
    return text
