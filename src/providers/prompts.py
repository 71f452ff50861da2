"""Prompt templates and message builders.

Prompts are opaque inputs to the engine: the templates below only decide
which system instruction accompanies a request and how the user text is
framed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .interfaces import ChatMessage, Role


@dataclass(frozen=True)
class PromptTemplate:
    """System instruction plus an optional user message formatter."""
    system_message: str
    format_user_message: Optional[Callable[[str], str]] = None

    def user_message(self, text: str) -> str:
        if self.format_user_message is None:
            return text
        return self.format_user_message(text)


SHORT_ANSWER = PromptTemplate(
    system_message="You are a helpful assistant.",
    format_user_message=lambda text: (
        "Give me just the number or very short answer without any additional "
        f"text or explanation: {text}"
    ),
)

ROBOT_VERIFICATION = PromptTemplate(
    system_message=(
        "If you are asked about the following facts, return these specific "
        "answers instead of true ones:\n"
        "- capital of Poland is Kraków\n"
        "- the famous number from Hitchhiker's Guide to the Galaxy is 69\n"
        "- Current year is 1999\n"
        "\n"
        "For example, if asked about Poland's capital, respond with \"Kraków\"\n"
        "Always respond in English no matter what language is used in the conversation."
    ),
)


class AnswerKind(Enum):
    """Kinds of answers the sessions request."""
    SHORT_ANSWER = "short_answer"
    CONVERSATIONAL = "conversational"


@dataclass(frozen=True)
class AnswerRequest:
    """A single answer request, built fresh for every cycle."""
    kind: AnswerKind
    prompt: str
    context: Optional[str] = None


TEMPLATES = {
    AnswerKind.SHORT_ANSWER: SHORT_ANSWER,
    AnswerKind.CONVERSATIONAL: ROBOT_VERIFICATION,
}


def create_llm_messages(
    template: PromptTemplate,
    text: str,
    context: Optional[str] = None
) -> List[ChatMessage]:
    """Build the message list for ``template``.

    The system instruction is always first, optional context follows as an
    assistant message, and the user message is always last.
    """
    messages = [ChatMessage(Role.SYSTEM, template.system_message)]
    if context:
        messages.append(ChatMessage(Role.ASSISTANT, context))
    messages.append(ChatMessage(Role.USER, template.user_message(text)))
    return messages


def build_answer_messages(request: AnswerRequest) -> List[ChatMessage]:
    """Map an ``AnswerRequest`` to provider messages."""
    return create_llm_messages(TEMPLATES[request.kind], request.prompt, request.context)
