"""Links de WhatsApp (wa.me) e scripts de recorrência"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote
from clinic_crm.config import settings
from clinic_crm.models import CrmLead

logger = logging.getLogger(__name__)

NON_DIGITS = re.compile(r"\D")
# Mesmos caracteres preservados por encodeURIComponent
URI_COMPONENT_SAFE = "-_.!~*'()"

RECURRENCE_MESSAGE = (
    "Olá {name}! 💛 Tudo bem? Aqui é da {clinic}! Seu procedimento de {procedure} "
    "está próximo do vencimento. Que tal agendarmos sua renovação?"
)

# Scripts padrão por tipo de procedimento; a primeira chave contida no nome vence
DEFAULT_SCRIPTS: Dict[str, str] = {
    "implante": (
        "Olá {nome}! 💫\n\n"
        "Seu implante hormonal está no período ideal para renovação!\n\n"
        "Manter os níveis hormonais equilibrados é fundamental para:\n"
        "✨ Disposição e energia\n"
        "✨ Qualidade do sono\n"
        "✨ Bem-estar geral\n\n"
        "Vamos agendar sua consulta? Tenho um horário especial reservado para você! 📅"
    ),
    "botox": (
        "Oi {nome}! ✨\n\n"
        "Passando para lembrar que já está chegando o momento da sua manutenção de Botox!\n\n"
        "Para manter aquele resultado lindo e natural, o ideal é renovar agora.\n\n"
        "Que tal agendarmos? Tenho condições especiais esperando você! 💕"
    ),
    "morpheus": (
        "Olá {nome}! 🌟\n\n"
        "Seu tratamento com Morpheus está no momento perfeito para a próxima sessão!\n\n"
        "Lembre-se: a consistência é a chave para resultados incríveis.\n\n"
        "Posso agendar sua próxima sessão? ✨"
    ),
    "default": (
        "Oi {nome}! 💫\n\n"
        "Tudo bem? Passando para lembrar que está na hora de renovar seu tratamento!\n\n"
        "Manter a regularidade é essencial para resultados duradouros.\n\n"
        "Quando podemos te receber novamente? Tenho horários especiais para você! 🌸"
    ),
}


def digits_only(phone: Optional[str]) -> str:
    return NON_DIGITS.sub("", phone or "")


def lead_phone(lead: CrmLead) -> str:
    """WhatsApp tem prioridade sobre o telefone"""
    return digits_only(lead.whatsapp or lead.phone)


def build_whatsapp_link(phone: str, text: Optional[str] = None) -> str:
    digits = digits_only(phone)
    country = settings.whatsapp_country_code
    # Números já com DDI (55 + DDD + número) não recebem o prefixo de novo
    if not (digits.startswith(country) and len(digits) >= 12):
        digits = f"{country}{digits}"
    url = f"https://wa.me/{digits}"
    if text:
        url += f"?text={quote(text, safe=URI_COMPONENT_SAFE)}"
    return url


def recurrence_message(lead: CrmLead) -> str:
    return RECURRENCE_MESSAGE.format(
        name=lead.name or "",
        clinic=settings.clinic_name,
        procedure=lead.last_procedure_name or "tratamento",
    )


def generate_recurrence_script(
    patient_name: Optional[str],
    procedure_name: Optional[str],
    custom_template: Optional[str] = None,
) -> str:
    """Script personalizado com o primeiro nome do paciente"""
    first_name = (patient_name or "").split(" ")[0] or "Cliente"
    procedure = (procedure_name or "").lower()

    template = custom_template or DEFAULT_SCRIPTS["default"]
    for keyword, keyword_template in DEFAULT_SCRIPTS.items():
        if keyword != "default" and keyword in procedure:
            template = keyword_template
            break

    return template.replace("{nome}", first_name)


@dataclass
class DispatchLink:
    lead_id: str
    name: Optional[str]
    url: str


@dataclass
class DispatchResult:
    links: List[DispatchLink] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": len(self.links) + len(self.skipped),
            "links": [{"lead_id": link.lead_id, "name": link.name, "url": link.url} for link in self.links],
            "skipped": self.skipped,
        }


def dispatch_batch(leads: Sequence[CrmLead]) -> DispatchResult:
    """Um link wa.me por lead selecionado; leads sem número são ignorados"""
    result = DispatchResult()
    for lead in leads:
        phone = lead_phone(lead)
        if not phone:
            result.skipped.append(lead.id)
            continue
        result.links.append(
            DispatchLink(lead_id=lead.id, name=lead.name, url=build_whatsapp_link(phone, recurrence_message(lead)))
        )
    logger.info(f"📲 [WHATSAPP] {len(result.links)} link(s) gerado(s), {len(result.skipped)} lead(s) sem telefone")
    return result
