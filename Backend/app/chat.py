"""
Booking chat turn.

One request is one turn: load what the session carries, read the client's
message and history, check the slot, and either answer with a structured
message, show the recap, write the appointment, or let the language model
write a conversational reply. The model never decides anything; its reply
is checked before it is sent.
"""
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .availability import AvailabilityChecker, find_conflicts
from .business_time import (
    format_date_long,
    minutes_to_time,
    parse_hhmm,
    to_business_time,
)
from .chat_sessions import ChatSessionStore
from .client_identity import ClientIdentity, identify_client, resolve_service
from .confirmation import (
    COMMIT_FAILED_MESSAGE,
    RACE_LOST_MESSAGE,
    BookingDraft,
    build_change_reply,
    build_missing_fields_message,
    build_no_employee_message,
    build_recap,
    build_success_message,
    detect_changes,
    find_pending_recap,
    guard_reply,
    is_confirmation,
)
from .core.config import get_settings
from .core.errors import BarbershopNotFoundError, SlotTakenError
from .extraction import ChatRole, ExtractedEntities, HistoryMessage, extract_entities
from .models import Appointment, AppointmentStatus, PaymentStatus

settings = get_settings()
logger = logging.getLogger(__name__)


class ConversationMessage(BaseModel):
    role: str  # "user" | "assistant"
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    barbershop_id: uuid.UUID = Field(alias="barbershopId")
    conversation_history: list[ConversationMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    def history(self) -> list[HistoryMessage]:
        allowed = {ChatRole.USER.value, ChatRole.ASSISTANT.value}
        return [
            HistoryMessage(role=ChatRole(item.role), content=item.content)
            for item in self.conversation_history
            if item.role in allowed
        ]


@dataclass
class TurnResult:
    message: str
    session_id: str
    requires_confirmation: bool = False
    action_result: Optional[dict] = None

    def to_payload(self) -> dict:
        if self.requires_confirmation:
            return {
                "message": self.message,
                "requiresConfirmation": True,
                "sessionId": self.session_id,
            }
        return {
            "message": self.message,
            "actionResult": self.action_result,
            "sessionId": self.session_id,
        }


Narrator = Callable[[str, str, Sequence[HistoryMessage]], Awaitable[Optional[str]]]


# ────────────────────────────────────────────────────────────────
# Narrative replies
# ────────────────────────────────────────────────────────────────

SYSTEM_PROMPT = """Você é o assistente virtual da {barbershop}, uma barbearia no Brasil.
Converse em português do Brasil, de forma simpática, direta e breve.

AGORA: {today_long}, {current_time} (horário de Brasília)
HOJE: {today_iso} | AMANHÃ: {tomorrow_iso}

SERVIÇOS:
{services}

PROFISSIONAIS:
{employees}

HORÁRIO DE FUNCIONAMENTO:
{business_hours}

O QUE JÁ SABEMOS DESTE AGENDAMENTO:
{known}

REGRAS:
1. Para agendar é preciso: nome completo, telefone com DDD, serviço, profissional, data e horário.
2. Peça apenas o que está faltando. Não peça de novo o que o cliente já informou.
3. Horários sempre no formato 24h, por exemplo "16:00 (4 da tarde)".
4. Você NÃO verifica agenda e NÃO cria agendamentos. O sistema faz isso.
5. NUNCA diga que o horário está confirmado, agendado, marcado ou reservado.
6. Não invente disponibilidade nem falta de disponibilidade.
{returning}"""

RETURNING_CLIENT = """
CLIENTE IDENTIFICADO (JÁ AGENDOU CONOSCO):
Nome: {name}
Telefone: {phone}
- Cumprimente pelo nome, ele já é conhecido da casa.
- Não peça o telefone novamente.
"""


def _format_business_hours(business_hours: Optional[dict]) -> str:
    if not business_hours:
        return "Consulte os horários de cada profissional."
    day_labels = {
        "monday": "Segunda",
        "tuesday": "Terça",
        "wednesday": "Quarta",
        "thursday": "Quinta",
        "friday": "Sexta",
        "saturday": "Sábado",
        "sunday": "Domingo",
    }
    lines = []
    for key, label in day_labels.items():
        hours = business_hours.get(key)
        if not hours:
            continue
        if hours.get("closed"):
            lines.append(f"- {label}: fechado")
        else:
            lines.append(f"- {label}: {hours.get('open')} às {hours.get('close')}")
    return "\n".join(lines) or "Consulte os horários de cada profissional."


def build_system_prompt(
    barbershop,
    services: Sequence,
    employees: Sequence,
    now: datetime,
    identity: ClientIdentity,
    draft: BookingDraft,
) -> str:
    local_now = to_business_time(now)
    today = local_now.date()

    service_lines = "\n".join(
        f"- {s.name}: R$ {s.price:.2f} ({s.duration_minutes} min)" for s in services
    ) or "- Nenhum serviço cadastrado"
    employee_lines = "\n".join(f"- {e.name}" for e in employees) or "- Nenhum profissional cadastrado"

    known = [
        f"- Nome: {draft.client_name or 'não informado'}",
        f"- Telefone: {draft.client_phone or 'não informado'}",
        f"- Serviço: {draft.service_name or 'não informado'}",
        f"- Profissional: {draft.employee_name or 'não informado'}",
        f"- Data: {draft.date_label or 'não informada'}",
        f"- Horário: {draft.time or 'não informado'}",
    ]

    returning = ""
    if identity.profile is not None:
        returning = RETURNING_CLIENT.format(name=identity.profile.name, phone=identity.profile.phone)
        if getattr(identity.profile, "notes", None):
            returning += f"Observações: {identity.profile.notes}\n"

    return SYSTEM_PROMPT.format(
        barbershop=barbershop.name,
        today_long=format_date_long(today),
        current_time=local_now.strftime("%H:%M"),
        today_iso=today.isoformat(),
        tomorrow_iso=(today + timedelta(days=1)).isoformat(),
        services=service_lines,
        employees=employee_lines,
        business_hours=_format_business_hours(barbershop.business_hours),
        known="\n".join(known),
        returning=returning,
    )


async def narrate(system_prompt: str, message: str, history: Sequence[HistoryMessage]) -> Optional[str]:
    """Ask the chat model for a reply. None when unavailable."""
    if not settings.openai_api_key:
        return None

    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url or None,
    )
    openai_messages = [{"role": "system", "content": system_prompt}]
    for item in history:
        openai_messages.append({"role": ChatRole(item.role).value, "content": item.content})
    openai_messages.append({"role": "user", "content": message})

    try:
        response = await client.chat.completions.create(
            model=settings.chat_model,
            messages=openai_messages,
            max_tokens=settings.chat_max_tokens,
            temperature=settings.chat_temperature,
        )
    except OpenAIError:
        logger.exception("Chat model request failed")
        return None
    return (response.choices[0].message.content or "").strip() or None


# ────────────────────────────────────────────────────────────────
# Commit
# ────────────────────────────────────────────────────────────────

async def commit_appointment(
    queries,
    *,
    barbershop_id: uuid.UUID,
    employee,
    service,
    draft: BookingDraft,
    duration: int,
    client_profile_id: Optional[uuid.UUID] = None,
) -> Appointment:
    """
    Re-check the slot and insert the appointment.

    Raises SlotTakenError when another booking got there first, either
    seen by the re-check or by the unique index.
    """
    start = parse_hhmm(draft.time)
    end = start + duration

    existing = await queries.list_appointments(employee.id, draft.appointment_date)
    if find_conflicts(existing, start, end):
        raise SlotTakenError(employee.id, draft.appointment_date, draft.time)

    appointment = Appointment(
        id=uuid.uuid4(),
        barbershop_id=barbershop_id,
        employee_id=employee.id,
        service_id=service.id,
        client_name=draft.client_name,
        client_phone=draft.client_phone,
        client_profile_id=client_profile_id,
        appointment_date=draft.appointment_date,
        start_time=minutes_to_time(start),
        end_time=minutes_to_time(end),
        status=AppointmentStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
    )
    try:
        await queries.add_appointment(appointment)
    except IntegrityError as exc:
        raise SlotTakenError(employee.id, draft.appointment_date, draft.time) from exc

    logger.info(
        "Created appointment %s for %s on %s at %s with %s",
        appointment.id,
        draft.client_name,
        draft.appointment_date.isoformat(),
        draft.time,
        employee.name,
    )
    return appointment


# ────────────────────────────────────────────────────────────────
# Turn
# ────────────────────────────────────────────────────────────────

def service_duration(service, services: Sequence) -> int:
    if service is not None:
        return service.duration_minutes
    if len(services) == 1:
        return services[0].duration_minutes
    return settings.default_service_duration_minutes


def clarify_hour_message(hour: int) -> str:
    return (
        f"🕐 Só para confirmar: você quer às {hour} da manhã ({hour:02d}:00) "
        f"ou às {hour} da tarde ({hour + 12:02d}:00)?"
    )


def availability_followup(availability_message: str, draft: BookingDraft, services: Sequence) -> str:
    """Slot is free but the client still owes us something."""
    if not draft.service_name:
        names = ", ".join(s.name for s in services)
        return f"{availability_message} Para qual serviço você gostaria de agendar? ({names})"
    if not draft.client_name and not draft.client_phone:
        return f"{availability_message} Para confirmar, preciso do seu nome completo e telefone."
    if not draft.client_name:
        return f"{availability_message} Para confirmar, preciso do seu nome completo."
    return f"{availability_message} Para confirmar, preciso do seu telefone com DDD."


class ChatTurn:
    """Runs one chat turn for one barbershop."""

    def __init__(
        self,
        queries,
        store: ChatSessionStore,
        *,
        narrator: Optional[Narrator] = None,
        now: Optional[datetime] = None,
    ):
        self.queries = queries
        self.store = store
        self.narrator = narrator or narrate
        self.now = now or datetime.now(timezone.utc)

    async def run(self, request: ChatRequest) -> TurnResult:
        barbershop = await self.queries.get_barbershop()
        if barbershop is None:
            raise BarbershopNotFoundError(request.barbershop_id)

        context = await self.store.load_context(request.session_id, self.now)
        chat_session = context.session
        history = request.history()

        services = list(await self.queries.list_services())
        employees = list(await self.queries.list_employees())
        profiles = list(await self.queries.list_client_profiles())

        entities = extract_entities(
            request.message,
            history,
            employees,
            session_date=context.session_date,
            now=self.now,
        )
        logger.info(
            "Turn %s: date=%s [%s] time=%s [%s] employee=%s",
            context.session_id,
            entities.date,
            entities.date_label,
            entities.time,
            entities.time_source.value,
            getattr(entities.employee, "name", None),
        )
        if entities.date_source.persists_to_session:
            self.store.remember_date(chat_session, entities.date)

        identity = identify_client(request.message, history, profiles)
        if identity.phone:
            self.store.link_client(
                chat_session,
                identity.phone,
                identity.profile.id if identity.profile is not None else None,
            )

        recap = find_pending_recap(history)
        service = resolve_service(
            request.message, history, services, recap.service if recap else None
        )

        result = await self._decide(
            request,
            history,
            barbershop=barbershop,
            services=services,
            employees=employees,
            entities=entities,
            identity=identity,
            recap=recap,
            service=service,
            session_id=context.session_id,
        )
        if result.action_result and result.action_result.get("success"):
            self.store.complete(chat_session)

        await self.store.record_turn(
            chat_session,
            request.message,
            result.message,
            self.now,
            metadata={
                "date": entities.date.isoformat(),
                "time": entities.time,
                "requires_confirmation": result.requires_confirmation,
            },
        )
        return result

    async def _decide(
        self,
        request: ChatRequest,
        history: list[HistoryMessage],
        *,
        barbershop,
        services: list,
        employees: list,
        entities: ExtractedEntities,
        identity: ClientIdentity,
        recap,
        service,
        session_id: str,
    ) -> TurnResult:
        def reply(text: str, **kwargs) -> TurnResult:
            return TurnResult(message=text, session_id=session_id, **kwargs)

        draft = BookingDraft(
            client_name=identity.name,
            client_phone=identity.phone,
            service_name=service.name if service is not None else None,
            employee_name=getattr(entities.employee, "name", None),
            appointment_date=entities.date,
            time=entities.time,
        )

        if entities.ambiguous_hour is not None:
            return reply(clarify_hour_message(entities.ambiguous_hour))

        if entities.time and employees:
            duration = service_duration(service, services)
            checker = AvailabilityChecker(self.queries, now=self.now)
            employee = entities.employee
            if employee is not None:
                availability = await checker.check(employee, entities.date, entities.time, duration)
            else:
                search = await checker.first_available(employees, entities.date, entities.time, duration)
                employee, availability = search.employee, search.result
                if employee is None:
                    return reply(
                        build_no_employee_message(
                            draft.service_name,
                            entities.time,
                            entities.date,
                            [e.name for e in employees],
                        )
                    )

            if not availability.available:
                return reply(availability.message())

            draft = replace(draft, employee_name=employee.name)
            if not draft.complete:
                return reply(availability_followup(availability.message(), draft, services))

            changes = detect_changes(recap, draft) if recap else []
            if changes:
                return reply(build_change_reply(request.message, changes, draft), requires_confirmation=True)
            if recap and is_confirmation(request.message):
                return await self._commit(
                    reply,
                    barbershop=barbershop,
                    employee=employee,
                    service=service,
                    draft=draft,
                    duration=duration,
                    identity=identity,
                )
            return reply(build_recap(draft), requires_confirmation=True)

        system_prompt = build_system_prompt(barbershop, services, employees, self.now, identity, draft)
        narrative = await self.narrator(system_prompt, request.message, history)
        if not narrative:
            return reply(build_missing_fields_message(draft.missing_fields()))
        return reply(guard_reply(narrative, draft))

    async def _commit(self, reply, *, barbershop, employee, service, draft, duration, identity) -> TurnResult:
        try:
            appointment = await commit_appointment(
                self.queries,
                barbershop_id=barbershop.id,
                employee=employee,
                service=service,
                draft=draft,
                duration=duration,
                client_profile_id=identity.profile.id if identity.profile is not None else None,
            )
        except SlotTakenError as exc:
            logger.info("Lost race for slot: %s", exc.message)
            return reply(RACE_LOST_MESSAGE, action_result={"success": False})
        except SQLAlchemyError:
            logger.exception("Failed to create appointment")
            return reply(COMMIT_FAILED_MESSAGE, action_result={"success": False})

        return reply(
            build_success_message(draft),
            action_result={
                "success": True,
                "appointmentId": str(appointment.id),
                "appointment": appointment.to_dict(),
            },
        )


async def process_turn(
    request: ChatRequest,
    queries,
    store: ChatSessionStore,
    *,
    narrator: Optional[Narrator] = None,
    now: Optional[datetime] = None,
) -> TurnResult:
    return await ChatTurn(queries, store, narrator=narrator, now=now).run(request)
