"""Deterministic heuristics for the requirements conversation.

Scoring, phase detection, follow-up questions and reply templates live here
so routine chat turns never wait on the AI provider. Nothing in this module
touches the database or the network.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from app.models.schemas import AnalysisPhase, Completeness, MessageRole

FUNCTIONAL_KEYWORDS = ["usuario", "función", "hacer", "necesito", "quiero", "debe", "funcionalidad"]
TECHNICAL_KEYWORDS = ["base de datos", "api", "servidor", "tecnología", "framework", "integración"]
VALIDATION_KEYWORDS = ["validar", "verificar", "restricción", "regla", "error", "excepción"]

# Bank order decides which topic wins when several are mentioned
QUESTION_BANK: Dict[str, List[str]] = {
    "authentication": [
        "¿Qué métodos de autenticación prefieres? (email/password, SSO, 2FA)",
        "¿Necesitas integración con sistemas externos de autenticación?",
        "¿Qué información debe capturarse durante el registro?",
    ],
    "database": [
        "¿Qué tipo de datos principales manejará el sistema?",
        "¿Necesitas reportes o analytics específicos?",
        "¿Hay requerimientos de backup o recuperación de datos?",
    ],
    "ui_ux": [
        "¿El sistema debe ser responsive (móvil, tablet, desktop)?",
        "¿Hay algún estilo o tema específico que prefieras?",
        "¿Los usuarios necesitan personalizar la interfaz?",
    ],
    "integration": [
        "¿Necesita integración con APIs externas? ¿Cuáles?",
        "¿El sistema debe exportar datos? ¿En qué formatos?",
        "¿Hay sistemas legados con los que debe conectarse?",
    ],
    "performance": [
        "¿Cuántos usuarios concurrentes esperas?",
        "¿Hay procesos que deben ejecutarse en background?",
        "¿Existen requerimientos de velocidad específicos?",
    ],
    "security": [
        "¿Qué nivel de seguridad requiere la información?",
        "¿Necesitas logs de auditoría?",
        "¿Hay regulaciones de compliance que cumplir?",
    ],
}

GENERIC_QUESTIONS = [
    "¿Puedes detallar más sobre esta funcionalidad?",
    "¿Hay casos especiales o excepciones que deba considerar?",
    "¿Cómo debe comportarse el sistema en este escenario?",
]

PHASE_OPENINGS = {
    AnalysisPhase.FUNCTIONAL: "estás definiendo las funcionalidades principales. ",
    AnalysisPhase.TECHNICAL: "te enfocas en los aspectos técnicos del sistema. ",
    AnalysisPhase.VALIDATION: "estás considerando las validaciones y reglas de negocio. ",
}
DEFAULT_OPENING = "estás proporcionando información valiosa sobre el proyecto. "

READY_THRESHOLD = 80
PROGRESS_FOOTER_THRESHOLD = 60
DETAIL_WORD_THRESHOLD = 200

USERS_PATTERN = re.compile(r"usuarios?|roles?|perfiles?", re.IGNORECASE)
FUNCTIONALITY_PATTERN = re.compile(r"función|funcionalidad|hacer|proceso|flujo", re.IGNORECASE)
BUSINESS_PATTERN = re.compile(r"datos?|información|negocio|reglas?", re.IGNORECASE)

FINAL_DOCUMENT_START = "=== LEVANTAMIENTO DE REQUISITOS FINAL ==="
FINAL_DOCUMENT_END = "=== FIN LEVANTAMIENTO ==="
_SECTION_HEADER = re.compile(r"^\s*\*\*(?P<name>[^*]+?):?\*\*:?\s*(?P<rest>.*)$")
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(?P<item>.+)$")


class InputInsight(BaseModel):
    topics: List[str] = Field(default_factory=list)
    completeness: int = 0
    suggested_questions: List[str] = Field(default_factory=list)
    phase: AnalysisPhase = AnalysisPhase.INITIAL


class Readiness(BaseModel):
    ready: bool
    reason: str
    completeness: int
    missing_aspects: List[str] = Field(default_factory=list)
    breakdown: Completeness = Field(default_factory=Completeness)


class FinalDocument(BaseModel):
    """Sections of a ``LEVANTAMIENTO DE REQUISITOS FINAL`` block."""
    raw: str
    sections: Dict[str, List[str]] = Field(default_factory=dict)

    def section(self, *names: str) -> Optional[List[str]]:
        for name in names:
            items = self.sections.get(name.lower())
            if items:
                return items
        return None


def _word_count(text: str) -> int:
    return len(text.split())


def _role_of(message: Any) -> str:
    role = message.get("role") if isinstance(message, dict) else getattr(message, "role", "")
    return str(getattr(role, "value", role) or "").upper()


def _content_of(message: Any) -> str:
    content = message.get("content") if isinstance(message, dict) else getattr(message, "content", "")
    return content or ""


class ChatIntelligenceService:
    """Keyword scoring and reply templates for the conversational workflow."""

    @staticmethod
    def generate_welcome_message(project_title: str) -> str:
        return (
            f"¡Hola! 👋 Soy tu asistente de análisis de requerimientos para el proyecto \"{project_title}\".\n\n"
            "Mi objetivo es ayudarte a definir completamente los requisitos del sistema a través de una "
            "conversación estructurada.\n\n"
            "**¿Cómo funciona?**\n"
            "📋 Te haré preguntas específicas para entender tu proyecto\n"
            "🔍 Profundizaremos en aspectos técnicos y funcionales\n"
            "✅ Al final tendrás un análisis completo de requerimientos\n\n"
            "**Para comenzar, me gustaría conocer:**\n\n"
            f"1️⃣ **¿Cuál es el propósito principal de \"{project_title}\"?**\n"
            "   - ¿Qué problema específico busca resolver?\n"
            "   - ¿Quiénes serán los usuarios finales?\n\n"
            "2️⃣ **¿Puedes describir brevemente cómo imaginas que funcionaría?**\n\n"
            "¡Cuéntame todos los detalles que consideres importantes! 🚀"
        )

    @staticmethod
    def generate_follow_up_questions(topic: str, context: str) -> List[str]:
        # ``topic`` is accepted for signature parity; detection runs on the context
        lowered = context.lower()
        for name, questions in QUESTION_BANK.items():
            if name.replace("_", " ") in lowered or name in lowered:
                return list(questions)
        return list(GENERIC_QUESTIONS)

    @classmethod
    def analyze_user_input(cls, message: str) -> InputInsight:
        lowered = message.lower()
        topics: List[str] = []
        completeness = 0
        phase = AnalysisPhase.INITIAL

        # Order matters: each match overwrites the phase, so the last one wins
        if any(keyword in lowered for keyword in FUNCTIONAL_KEYWORDS):
            topics.append("functional_requirements")
            completeness += 25
            phase = AnalysisPhase.FUNCTIONAL

        if any(keyword in lowered for keyword in TECHNICAL_KEYWORDS):
            topics.append("technical_requirements")
            completeness += 25
            phase = AnalysisPhase.TECHNICAL

        if any(keyword in lowered for keyword in VALIDATION_KEYWORDS):
            topics.append("validation_requirements")
            completeness += 25
            phase = AnalysisPhase.VALIDATION

        words = _word_count(message)
        if words > 50:
            completeness += 20
        if words > 100:
            completeness += 15
        if "?" in message:
            completeness += 10

        return InputInsight(
            topics=topics,
            completeness=max(0, min(completeness, 100)),
            suggested_questions=cls.generate_follow_up_questions(topics[0] if topics else "general", message),
            phase=phase,
        )

    @classmethod
    def generate_contextual_response(cls, insight: InputInsight, user_message: str) -> str:
        response = "Perfecto, entiendo que "
        response += PHASE_OPENINGS.get(insight.phase, DEFAULT_OPENING)

        response += "\n\n✅ **He registrado:**\n"
        response += f"- {cls.extract_key_point(user_message)}\n"

        response += "\n🤔 **Para profundizar más, me gustaría saber:**\n\n"
        for index, question in enumerate(insight.suggested_questions[:3], start=1):
            response += f"{index}. {question}\n"

        if insight.completeness > PROGRESS_FOOTER_THRESHOLD:
            response += f"\n📊 **Progreso del análisis: {insight.completeness}%**"
            response += (
                "\n\n🎯 ¡Excelente! Estamos avanzando bien. Con un poco más de información "
                "podremos generar el análisis completo."
            )

        return response

    @staticmethod
    def extract_key_point(message: str) -> str:
        sentences = [s for s in re.split(r"[.!?]+", message) if len(s.strip()) > 10]
        key_point = sentences[0].strip() if sentences else message[:100]
        return key_point[:97] + "..." if len(key_point) > 100 else key_point

    @staticmethod
    def is_project_ready_to_complete(messages: Iterable[Any]) -> Readiness:
        """Score the whole conversation; ``messages`` may be models or dicts."""
        user_texts = [_content_of(m) for m in messages if _role_of(m) == MessageRole.USER.value]
        total_words = sum(_word_count(text) for text in user_texts)

        has_users = any(USERS_PATTERN.search(text) for text in user_texts)
        has_functionality = any(FUNCTIONALITY_PATTERN.search(text) for text in user_texts)
        has_business = any(BUSINESS_PATTERN.search(text) for text in user_texts)
        has_detail = total_words > DETAIL_WORD_THRESHOLD

        missing: List[str] = []
        breakdown = Completeness(
            users_coverage=30 if has_users else 0,
            functional_coverage=40 if has_functionality else 0,
            business_rules_coverage=20 if has_business else 0,
            detail_coverage=10 if has_detail else 0,
        )
        if not has_users:
            missing.append("usuarios y roles")
        if not has_functionality:
            missing.append("funcionalidades principales")
        if not has_business:
            missing.append("reglas de negocio")
        if not has_detail:
            missing.append("más detalles")

        completeness = min(
            100,
            breakdown.users_coverage
            + breakdown.functional_coverage
            + breakdown.business_rules_coverage
            + breakdown.detail_coverage,
        )
        breakdown.overall_score = completeness
        ready = completeness >= READY_THRESHOLD
        reason = (
            "¡El proyecto tiene suficiente información para generar un análisis completo!"
            if ready
            else f"Faltan algunos aspectos: {', '.join(missing)}"
        )
        return Readiness(
            ready=ready,
            reason=reason,
            completeness=completeness,
            missing_aspects=missing,
            breakdown=breakdown,
        )

    @staticmethod
    def generate_completion_message(project_title: str) -> str:
        return (
            "🎉 **¡Excelente trabajo!**\n\n"
            f"He recopilado toda la información necesaria para \"{project_title}\".\n\n"
            "**✅ Análisis Completado:**\n"
            "- Requisitos funcionales identificados\n"
            "- Casos de uso definidos\n"
            "- Aspectos técnicos considerados\n"
            "- Reglas de negocio establecidas\n\n"
            "**📋 Tu proyecto ahora incluye:**\n"
            "- Análisis detallado de requerimientos\n"
            "- Casos de prueba sugeridos\n"
            "- Documentación estructurada\n"
            "- Recomendaciones técnicas\n\n"
            "¿Te gustaría **completar el proyecto** para finalizar el análisis y generar la documentación "
            "completa?\n\n"
            "Una vez completado, podrás acceder a toda la documentación generada y los casos de prueba "
            "recomendados. 🚀"
        )

    @staticmethod
    def generate_reopen_message(reason: Optional[str] = None) -> str:
        motive = f" Motivo: {reason}." if reason else ""
        return f"Análisis reabierto.{motive} ¿En qué puedo ayudarte a mejorar?"

    @staticmethod
    def extract_final_document(text: str) -> Optional[FinalDocument]:
        """Return the final requirements block of an AI reply, or None when absent."""
        start = text.find(FINAL_DOCUMENT_START)
        if start == -1:
            return None
        body_start = start + len(FINAL_DOCUMENT_START)
        end = text.find(FINAL_DOCUMENT_END, body_start)
        body = text[body_start:end if end != -1 else len(text)].strip()

        sections: Dict[str, List[str]] = {}
        current: Optional[str] = None
        for line in body.splitlines():
            header = _SECTION_HEADER.match(line)
            if header:
                current = header.group("name").strip().rstrip(":").lower()
                sections[current] = []
                rest = header.group("rest").strip()
                if rest:
                    sections[current].append(rest)
                continue
            if current is None or not line.strip():
                continue
            bullet = _BULLET.match(line)
            sections[current].append((bullet.group("item") if bullet else line).strip())

        return FinalDocument(raw=body, sections=sections)
