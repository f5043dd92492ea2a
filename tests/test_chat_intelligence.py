from app.models.schemas import AnalysisPhase, ConversationMessage, MessageRole
from app.services.chat_intelligence import (
    FINAL_DOCUMENT_END,
    FINAL_DOCUMENT_START,
    GENERIC_QUESTIONS,
    QUESTION_BANK,
    ChatIntelligenceService,
)

intelligence = ChatIntelligenceService

RICH_MESSAGE = (
    "Los usuarios con rol administrador deben aprobar cada solicitud. "
    "El flujo principal empieza cuando el cliente carga sus datos personales "
    "y las reglas de negocio indican que el monto máximo es de 5000."
)


def user(content):
    return {"role": "user", "content": content}


def test_welcome_message_mentions_title():
    message = intelligence.generate_welcome_message("Portal de Pagos")
    assert '"Portal de Pagos"' in message
    assert "propósito principal" in message


def test_analyze_functional_message():
    insight = intelligence.analyze_user_input("Necesito que el usuario pueda registrarse")
    assert insight.topics == ["functional_requirements"]
    assert insight.phase == AnalysisPhase.FUNCTIONAL
    assert insight.completeness == 25


def test_analyze_last_matching_category_wins():
    insight = intelligence.analyze_user_input("La API debe validar el token")
    assert insight.topics == [
        "functional_requirements",
        "technical_requirements",
        "validation_requirements",
    ]
    assert insight.phase == AnalysisPhase.VALIDATION
    assert insight.completeness == 75


def test_analyze_question_mark_and_length_bonus():
    long_text = " ".join(["palabra"] * 120) + "?"
    insight = intelligence.analyze_user_input(long_text)
    # 20 (>50 words) + 15 (>100 words) + 10 (question)
    assert insight.completeness == 45
    assert insight.phase == AnalysisPhase.INITIAL


def test_analyze_without_keywords_uses_generic_questions():
    insight = intelligence.analyze_user_input("Hola")
    assert insight.topics == []
    assert insight.phase == AnalysisPhase.INITIAL
    assert insight.completeness == 0
    assert insight.suggested_questions == GENERIC_QUESTIONS


def test_follow_up_questions_from_topic_bank():
    assert intelligence.generate_follow_up_questions("general", "we need authentication via sso") == (
        QUESTION_BANK["authentication"]
    )
    assert intelligence.generate_follow_up_questions("general", "the ui ux must be clean") == QUESTION_BANK["ui_ux"]


def test_follow_up_questions_bank_order_decides():
    questions = intelligence.generate_follow_up_questions("general", "security and database")
    assert questions == QUESTION_BANK["database"]


def test_extract_key_point_first_long_sentence():
    point = intelligence.extract_key_point("Hola. El sistema debe permitir registrar usuarios! Otro")
    assert point == "El sistema debe permitir registrar usuarios"


def test_extract_key_point_truncates():
    point = intelligence.extract_key_point("a" * 150)
    assert len(point) == 100
    assert point.endswith("...")


def test_extract_key_point_short_message_falls_back():
    assert intelligence.extract_key_point("ok") == "ok"


def test_contextual_response_progress_footer():
    insight = intelligence.analyze_user_input("La API debe validar el token")
    response = intelligence.generate_contextual_response(insight, "La API debe validar el token")
    assert response.startswith("Perfecto, entiendo que estás considerando las validaciones")
    assert "- La API debe validar el token" in response
    assert "Progreso del análisis: 75%" in response


def test_contextual_response_without_footer():
    insight = intelligence.analyze_user_input("Necesito que el usuario pueda registrarse")
    response = intelligence.generate_contextual_response(insight, "Necesito que el usuario pueda registrarse")
    assert "Progreso del análisis" not in response
    assert response.count("\n1. ") == 1


def test_readiness_ready_without_detail_bonus():
    readiness = intelligence.is_project_ready_to_complete([user(RICH_MESSAGE)])
    assert readiness.completeness == 90
    assert readiness.ready is True
    assert readiness.missing_aspects == ["más detalles"]


def test_readiness_full_score_with_long_conversation():
    filler = " ".join(["detalle"] * 210)
    readiness = intelligence.is_project_ready_to_complete([user(RICH_MESSAGE), user(filler)])
    assert readiness.completeness == 100
    assert readiness.missing_aspects == []
    assert readiness.breakdown.detail_coverage == 10


def test_readiness_not_ready_lists_missing_aspects():
    readiness = intelligence.is_project_ready_to_complete([user("Los usuarios siguen un flujo simple")])
    assert readiness.completeness == 70
    assert readiness.ready is False
    assert readiness.missing_aspects == ["reglas de negocio", "más detalles"]
    assert "reglas de negocio" in readiness.reason


def test_readiness_ignores_assistant_messages():
    messages = [
        ConversationMessage(role=MessageRole.ASSISTANT, content=RICH_MESSAGE),
        ConversationMessage(role=MessageRole.USER, content="Hola"),
    ]
    readiness = intelligence.is_project_ready_to_complete(messages)
    assert readiness.completeness == 0
    assert readiness.ready is False


def test_reopen_message_includes_reason():
    assert "Motivo: faltan reglas." in intelligence.generate_reopen_message("faltan reglas")
    assert "Motivo" not in intelligence.generate_reopen_message()


def test_extract_final_document_sections():
    text = (
        "Aquí está el documento.\n"
        f"{FINAL_DOCUMENT_START}\n"
        "**Épica inicial:**\n"
        "Gestión de préstamos\n\n"
        "**Roles del sistema:**\n"
        "- Cliente\n"
        "- Analista\n\n"
        "**Requisitos funcionales:**\n"
        "1. Solicitar préstamo\n"
        "2. Aprobar préstamo\n"
        f"{FINAL_DOCUMENT_END}\n"
        "Gracias."
    )
    document = intelligence.extract_final_document(text)
    assert document is not None
    assert document.sections["épica inicial"] == ["Gestión de préstamos"]
    assert document.section("roles del sistema") == ["Cliente", "Analista"]
    assert document.section("missing", "requisitos funcionales") == ["Solicitar préstamo", "Aprobar préstamo"]
    assert "Gracias" not in document.raw


def test_extract_final_document_absent():
    assert intelligence.extract_final_document("Solo una respuesta normal") is None


def test_analyze_login_message_is_functional():
    insight = intelligence.analyze_user_input("El usuario necesita poder hacer login")
    assert insight.phase == AnalysisPhase.FUNCTIONAL
    assert insight.completeness >= 25


def test_readiness_short_vague_message_misses_everything():
    readiness = intelligence.is_project_ready_to_complete([user("Hola quiero algo muy bonito")])
    assert readiness.ready is False
    assert readiness.completeness == 0
    assert readiness.missing_aspects == [
        "usuarios y roles",
        "funcionalidades principales",
        "reglas de negocio",
        "más detalles",
    ]
