"""
Orchestrator module for managing conversation flow and session state.
"""

from darija_tutor.orchestrator.conversation_orchestrator import (
    ERROR_MESSAGE,
    ConversationOrchestrator,
)
from darija_tutor.orchestrator.schemas import (
    AudioInput,
    ErrorReply,
    Message,
    MessageKind,
    MessageRole,
    Session,
    StructuredReply,
    TutorResponse,
    VocabItem,
)
from darija_tutor.orchestrator.session_store import SessionStore

__all__ = [
    "ERROR_MESSAGE",
    "ConversationOrchestrator",
    "SessionStore",
    "AudioInput",
    "ErrorReply",
    "Message",
    "MessageKind",
    "MessageRole",
    "Session",
    "StructuredReply",
    "TutorResponse",
    "VocabItem",
]
