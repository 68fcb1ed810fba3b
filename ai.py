"""
ai.py
-----
Explains in one sentence why a trip suits a user.

Responsibilities:
    - Ask Google Gemini for a short, encouraging match reason.
    - Fall back to a deterministic templated sentence when no API key is
      configured, the call fails, or the model returns nothing.
"""

import google.generativeai as genai

import config
from logger import get_logger

logger = get_logger(__name__)

DEFAULT_LANG = "it"

# ── Fallback sentences ───────────────────────────────────

_TEMPLATES = {
    "it": {
        "assistance": (
            "Questo viaggio supporta la Missione 5 del PNRR: il conducente offre l'assistenza "
            "specifica di cui hai bisogno per un tragitto inclusivo."
        ),
        "skill_match": (
            "Match perfetto per la Missione 4! Puoi ripassare {subject} durante il tragitto, "
            "ottimizzando il tuo tempo di studio."
        ),
        "tutoring": (
            "Interessante opportunità di Peer Tutoring (Missione 4) in {subject} per ampliare "
            "le tue conoscenze durante lo spostamento."
        ),
        "co2": (
            "Ottima scelta per la Missione 3: riduci le emissioni di CO2 e accumuli crediti "
            "per la tua mobilità sostenibile universitaria."
        ),
    },
    "en": {
        "assistance": (
            "This trip supports PNRR Mission 5: the driver offers the specific assistance "
            "you need for an inclusive journey."
        ),
        "skill_match": (
            "Perfect match for Mission 4! You can revise {subject} on the way and make the "
            "most of your study time."
        ),
        "tutoring": (
            "A great Peer Tutoring opportunity (Mission 4) in {subject} to broaden your "
            "knowledge while you travel."
        ),
        "co2": (
            "Great choice for Mission 3: you cut CO2 emissions and earn credits for "
            "sustainable university commuting."
        ),
    },
}

DEFAULT_REASON = _TEMPLATES[DEFAULT_LANG]["co2"]

_PROMPT = """Agisci come un assistente di mobilità inclusiva.
Analizza questo match tra un utente e un viaggio:
UTENTE: {name}, Competenze: {skills}, Bisogni: {needs}.
VIAGGIO: Da {origin} a {destination}, Tutoring offerto in: {subject}, Assistenza disabili: {assistance}.

Spiega in una sola frase breve e incoraggiante perché questo viaggio è ideale per l'utente,
citando i benefici PNRR (Missione 4: studio, Missione 5: inclusione).
"""


def fallback_reason(user: dict, trip: dict, lang: str = DEFAULT_LANG) -> str:
    """
    Pick the templated reason for a user/trip pair.

    Args:
        user: Wire-format user (uses ``skills`` and ``accessibilityNeeds``).
        trip: Wire-format trip (uses ``tutoringSubject`` and ``assistanceOffered``).
        lang: ``it`` or ``en``; anything else falls back to Italian.

    Returns:
        One sentence, chosen by the first rule that applies: assistance,
        skill match, tutoring on offer, CO2 savings.
    """
    templates = _TEMPLATES.get(lang, _TEMPLATES[DEFAULT_LANG])
    skills = user.get("skills") or []
    needs = user.get("accessibilityNeeds") or []
    subject = trip.get("tutoringSubject") or ""

    if needs and trip.get("assistanceOffered"):
        return templates["assistance"]
    if subject and any(s.lower() in subject.lower() for s in skills):
        return templates["skill_match"].format(subject=subject)
    if subject:
        return templates["tutoring"].format(subject=subject)
    return templates["co2"]


def _build_prompt(user: dict, trip: dict) -> str:
    return _PROMPT.format(
        name=user.get("name", ""),
        skills=", ".join(user.get("skills") or []),
        needs=", ".join(user.get("accessibilityNeeds") or []),
        origin=trip.get("from", ""),
        destination=trip.get("to", ""),
        subject=trip.get("tutoringSubject") or "Nessuno",
        assistance="Sì" if trip.get("assistanceOffered") else "No",
    )


def _generate(prompt: str) -> str:
    genai.configure(api_key=config.GEMINI_API_KEY)
    model = genai.GenerativeModel(config.GEMINI_MODEL)
    response = model.generate_content(prompt)
    return (response.text or "").strip()


def match_reason(user: dict, trip: dict, lang: str = DEFAULT_LANG) -> str:
    """Gemini's match reason, or the templated fallback."""
    if not config.GEMINI_API_KEY:
        return fallback_reason(user, trip, lang)
    try:
        text = _generate(_build_prompt(user, trip))
    except Exception as e:
        logger.warning(f"Gemini request failed, using fallback: {e}")
        return fallback_reason(user, trip, lang)
    return text or fallback_reason(user, trip, lang)
