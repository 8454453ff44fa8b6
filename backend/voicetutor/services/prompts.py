"""
Tutor prompt construction

Builds the chat system prompt from (target language, CEFR level) and holds the
small per-language tables the tutor needs (ISO codes, greetings, topics,
common phrases). Prompt and table lookups fall back to English / A1 so prompt
construction never fails; the ISO hint is None for unknown languages.
"""
from typing import Dict, List

DEFAULT_LANGUAGE = "english"
DEFAULT_LEVEL = "A1"

CEFR_LEVELS = ("A1", "A2", "B1", "B2", "C1", "C2")

GREETING_INSTRUCTION = "Please greet the user and ask how they are doing today. Keep it simple and friendly."

FALLBACK_REPLY = "I apologize, I could not generate a response."

LANGUAGE_INSTRUCTIONS: Dict[str, str] = {
    "english": "Respond in English",
    "spanish": "Respond in Spanish",
    "french": "Respond in French",
    "german": "Respond in German",
}

CEFR_INSTRUCTIONS: Dict[str, str] = {
    "A1": "Use very simple vocabulary and short sentences. Focus on basic everyday topics.",
    "A2": "Use simple vocabulary and sentence structures. Discuss familiar topics.",
    "B1": "Use intermediate vocabulary. Discuss a wider range of topics with some complexity.",
    "B2": "Use more advanced vocabulary and complex sentence structures.",
    "C1": "Use sophisticated vocabulary and complex grammar structures.",
    "C2": "Use native-level vocabulary and advanced linguistic structures.",
}

# ISO 639-1 codes used as the transcription language hint
LANGUAGE_CODES: Dict[str, str] = {
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "portuguese": "pt",
    "russian": "ru",
    "chinese": "zh",
    "japanese": "ja",
    "korean": "ko",
}

# Locale codes used to match ElevenLabs voices to a language
VOICE_LANGUAGE_CODES: Dict[str, List[str]] = {
    "english": ["en", "en-US", "en-GB"],
    "spanish": ["es", "es-ES", "es-MX"],
    "french": ["fr", "fr-FR"],
    "german": ["de", "de-DE"],
}

GREETINGS: Dict[str, str] = {
    "english": "Hello! How are you doing today?",
    "spanish": "¡Hola! ¿Cómo estás hoy?",
    "french": "Bonjour! Comment allez-vous aujourd'hui?",
    "german": "Hallo! Wie geht es dir heute?",
}

PREVIEW_TEXTS: Dict[str, str] = {
    "english": "Hello! This is a voice preview for language learning.",
    "spanish": "Hola! Esta es una vista previa de voz para aprender idiomas.",
    "french": "Bonjour! Ceci est un aperçu vocal pour l'apprentissage des langues.",
    "german": "Hallo! Dies ist eine Sprachvorschau zum Sprachenlernen.",
}

TOPICS: Dict[str, Dict[str, List[str]]] = {
    "english": {
        "A1": ["Introducing yourself", "Family and friends", "Daily routines", "Food and drinks", "Weather"],
        "A2": ["Hobbies", "Shopping", "Travel plans", "Past weekend", "Your hometown"],
        "B1": ["Current events", "Environmental issues", "Technology", "Cultural differences", "Future plans"],
        "B2": ["Work and careers", "Media and news", "Health and lifestyle", "Education systems", "Social trends"],
        "C1": ["Politics and society", "Ethics in technology", "Economics", "Art and literature", "Global challenges"],
        "C2": ["Abstract concepts", "Complex social issues", "Academic research", "Professional expertise", "Critical analysis"],
    },
    "spanish": {
        "A1": ["Presentarse", "Familia y amigos", "Rutinas diarias", "Comida y bebidas", "El tiempo"],
        "A2": ["Pasatiempos", "De compras", "Planes de viaje", "El fin de semana pasado", "Tu ciudad natal"],
        "B1": ["Noticias actuales", "Problemas ambientales", "Tecnología", "Diferencias culturales", "Planes futuros"],
        "B2": ["Trabajo y carreras", "Medios de comunicación", "Salud y estilo de vida", "Sistemas educativos", "Tendencias sociales"],
        "C1": ["Política y sociedad", "Ética en la tecnología", "Economía", "Arte y literatura", "Desafíos globales"],
        "C2": ["Conceptos abstractos", "Problemas sociales complejos", "Investigación académica", "Experiencia profesional", "Análisis crítico"],
    },
}

COMMON_PHRASES: Dict[str, Dict[str, List[str]]] = {
    "english": {
        "A1": ["Hello", "Thank you", "Please", "Excuse me", "I don't understand"],
        "A2": ["How are you?", "What time is it?", "Where is the bathroom?", "I would like..."],
        "B1": ["Could you help me?", "I'm looking for...", "What do you recommend?"],
        "B2": ["I'd like to make a reservation", "Could you explain that again?"],
        "C1": ["I'm afraid I have to disagree", "Let me think about that"],
        "C2": ["That's an interesting perspective", "I couldn't agree more"],
    },
    "spanish": {
        "A1": ["Hola", "Gracias", "Por favor", "Disculpe", "No entiendo"],
        "A2": ["¿Cómo estás?", "¿Qué hora es?", "¿Dónde está el baño?", "Me gustaría..."],
        "B1": ["¿Podrías ayudarme?", "Estoy buscando...", "¿Qué recomiendas?"],
        "B2": ["Me gustaría hacer una reserva", "¿Podrías explicar eso otra vez?"],
        "C1": ["Me temo que tengo que estar en desacuerdo", "Déjame pensar en eso"],
        "C2": ["Esa es una perspectiva interesante", "No podría estar más de acuerdo"],
    },
}

# Only languages with tutor instructions; others normalize to english
_CODE_TO_LANGUAGE = {code: name for name, code in LANGUAGE_CODES.items() if name in LANGUAGE_INSTRUCTIONS}


def normalize_language(language: str | None) -> str:
    """Map a language name or ISO code onto a supported language name (default english)."""
    key = (language or "").strip().lower()
    if key in LANGUAGE_INSTRUCTIONS:
        return key
    key = key.split("-")[0].split("_")[0]
    return _CODE_TO_LANGUAGE.get(key, DEFAULT_LANGUAGE)


def normalize_level(level: str | None) -> str:
    """Map a CEFR level string onto A1..C2 (default A1)."""
    key = (level or "").strip().upper()
    return key if key in CEFR_INSTRUCTIONS else DEFAULT_LEVEL


def language_code(language: str | None) -> str | None:
    """ISO 639-1 hint for a language name or code; None when the language is unknown."""
    key = (language or "").strip().lower()
    if key in LANGUAGE_CODES:
        return LANGUAGE_CODES[key]
    key = key.split("-")[0].split("_")[0]
    return key if key in LANGUAGE_CODES.values() else None


def build_system_prompt(target_language: str | None, cefr_level: str | None) -> str:
    """
    Build the tutor system prompt.

    Deterministic for a given (language, level); unknown values use the
    English / A1 instructions.
    """
    language_instruction = LANGUAGE_INSTRUCTIONS[normalize_language(target_language)]
    level = normalize_level(cefr_level)
    return (
        f"You are a friendly language learning assistant avatar. {language_instruction}.\n\n"
        f"Adapt your language level to {level}: {CEFR_INSTRUCTIONS[level]}\n\n"
        "Keep responses conversational and engaging. Gently correct mistakes when appropriate. "
        "Ask follow-up questions to encourage continued conversation. "
        "Limit responses to 2-3 sentences to maintain natural conversation flow."
    )


def greeting_for(language: str | None) -> str:
    return GREETINGS[normalize_language(language)]


def preview_text_for(language: str | None) -> str:
    return PREVIEW_TEXTS[normalize_language(language)]


def suggest_topics(cefr_level: str | None, language: str | None) -> List[str]:
    """Conversation topics for a level; languages without a table use English."""
    by_level = TOPICS.get(normalize_language(language), TOPICS[DEFAULT_LANGUAGE])
    return list(by_level[normalize_level(cefr_level)])


def common_phrases(language: str | None, cefr_level: str | None) -> List[str]:
    by_level = COMMON_PHRASES.get(normalize_language(language))
    if by_level is None:
        return list(COMMON_PHRASES[DEFAULT_LANGUAGE][DEFAULT_LEVEL])
    return list(by_level[normalize_level(cefr_level)])
