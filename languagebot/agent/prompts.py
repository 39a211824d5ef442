"""Prompt text sent to the dialogue agent."""

from languagebot.session.types import SessionConfig

KICKOFF_TEXT = "[A new user has just opened the chat. Please greet them and start the conversation]"

_CONVERSATION_INSTRUCTION = (
    "You are a {language} language teacher helping a student practice {language} "
    'conversation. The conversation description is as follows: "{scenario}". '
    "The student needs to use these words and grammar structures: {items}. "
    "Converse naturally in {language}, always following the description of the "
    "conversation. While conversing, subtly encourage the student to use the "
    "required vocabulary, but try not to explicitly mention the vocabulary words "
    "or the conversation topic. Keep your responses between 1-3 sentences. "
    "Please format your response in plaintext and do not use any markdown formatting."
)

_FEEDBACK_INSTRUCTION = (
    "You are a {language} language teacher reviewing a student's practice "
    'conversation. The conversation description was: "{scenario}". '
    "The student was asked to use these words and grammar structures: {items}."
)

_FEEDBACK_PROMPT = (
    "As a {language} language teacher, analyze the following dialogue, which "
    "represents a student's responses in a conversation. Provide constructive "
    "grammar feedback in English in a short paragraph. Focus on grammar mistakes, "
    "sentence structure, and areas for improvement. Please format your response "
    "in plaintext and do not use any markdown formatting. Address your response "
    "to the student.\n\n{text}"
)


def _items(config: SessionConfig) -> str:
    return ", ".join(config.required_items) if config.required_items else "(none)"


def conversation_instruction(config: SessionConfig) -> str:
    return _CONVERSATION_INSTRUCTION.format(
        language=config.language_name,
        scenario=config.scenario,
        items=_items(config),
    )


def feedback_instruction(config: SessionConfig) -> str:
    return _FEEDBACK_INSTRUCTION.format(
        language=config.language_name,
        scenario=config.scenario,
        items=_items(config),
    )


def feedback_prompt(transcript_text: str, config: SessionConfig) -> str:
    """Evaluation prompt over the human's utterances (may be empty)."""
    return _FEEDBACK_PROMPT.format(language=config.language_name, text=transcript_text)
