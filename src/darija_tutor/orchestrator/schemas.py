"""
Pydantic schemas for the conversation orchestrator.

Defines sessions, messages, tutor responses and vocabulary entries.
"""

import time
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_SESSION_TITLE = "New Conversation"
TITLE_MAX_CHARS = 20


def generate_id() -> str:
    """Generate a short opaque identifier for sessions and messages."""
    return uuid4().hex[:12]


def _now_ms() -> float:
    """Get the current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def truncate_title(text: str) -> str:
    """
    Derive a session title from the first utterance.

    Args:
        text: Raw text or transcription.

    Returns:
        The text itself if short enough, else its first characters plus an ellipsis.
    """
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


class MessageRole(str, Enum):
    """Who authored a message."""

    USER = "user"
    MODEL = "model"


class MessageKind(str, Enum):
    """How the message content is encoded."""

    TEXT = "text"
    AUDIO = "audio"


class VocabItem(BaseModel):
    """A vocabulary entry extracted by the tutor."""

    model_config = ConfigDict(frozen=True)

    word: str = Field(..., description="Darija word/phrase in 'Arabic Script (Latin Script)' format")
    meaning: str = Field(..., description="English meaning")
    notes: str | None = Field(default=None, description="Grammar or usage notes")


class TutorResponse(BaseModel):
    """Structured feedback returned by the inference gateway."""

    model_config = ConfigDict(frozen=True)

    transcription: str = Field(..., description="What the user said or wrote, in Darija")
    translation: str = Field(..., description="Direct English translation of the transcription")
    explanation: str = Field(..., description="English explanation of meaning and grammar")
    vocabulary: list[VocabItem] = Field(default_factory=list, description="Key words or phrases")


class AudioInput(BaseModel):
    """Encoded audio ready for transport to the gateway."""

    model_config = ConfigDict(frozen=True)

    base64_data: str = Field(..., description="Base64-encoded audio container")
    mime_type: str = Field(..., description="Mime type of the encoded audio")


class StructuredReply(BaseModel):
    """A successful tutor reply."""

    model_config = ConfigDict(frozen=True)

    status: Literal["structured"] = "structured"
    response: TutorResponse


class ErrorReply(BaseModel):
    """A placeholder reply recorded when the round trip failed."""

    model_config = ConfigDict(frozen=True)

    status: Literal["error"] = "error"
    text: str


ModelReply = Annotated[Union[StructuredReply, ErrorReply], Field(discriminator="status")]


class Message(BaseModel):
    """A single message in a session."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id, description="Unique message ID")
    role: MessageRole = Field(..., description="Author of the message")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="Encoding of the content")
    content: str = Field(..., description="Raw text, base64 audio, or serialized reply")
    mime_type: str | None = Field(default=None, description="Mime type of audio content")
    reply: ModelReply | None = Field(default=None, description="Tutor reply for model messages")
    timestamp: float = Field(default_factory=_now_ms, description="Creation time in epoch ms")

    @model_validator(mode="after")
    def _check_reply_matches_role(self) -> "Message":
        if self.role == MessageRole.MODEL and self.reply is None:
            raise ValueError("model messages must carry a structured or error reply")
        if self.role == MessageRole.USER and self.reply is not None:
            raise ValueError("user messages cannot carry a reply")
        if self.kind == MessageKind.AUDIO and not self.mime_type:
            raise ValueError("audio messages must record their mime type")
        return self

    @classmethod
    def from_user_text(cls, text: str) -> "Message":
        """Create a user message from typed text."""
        return cls(role=MessageRole.USER, kind=MessageKind.TEXT, content=text)

    @classmethod
    def from_user_audio(cls, audio: AudioInput) -> "Message":
        """Create a user message from encoded audio."""
        return cls(
            role=MessageRole.USER,
            kind=MessageKind.AUDIO,
            content=audio.base64_data,
            mime_type=audio.mime_type,
        )

    @classmethod
    def from_response(cls, response: TutorResponse) -> "Message":
        """Create a model message carrying a structured response."""
        return cls(
            role=MessageRole.MODEL,
            content=response.model_dump_json(),
            reply=StructuredReply(response=response),
        )

    @classmethod
    def from_error(cls, text: str) -> "Message":
        """Create a model message recording a failed round trip."""
        return cls(role=MessageRole.MODEL, content=text, reply=ErrorReply(text=text))

    @property
    def response(self) -> TutorResponse | None:
        """Get the structured response, if this is a successful model reply."""
        if isinstance(self.reply, StructuredReply):
            return self.reply.response
        return None

    @property
    def audio(self) -> AudioInput | None:
        """Get the recorded audio of an audio message, for replay."""
        if self.kind != MessageKind.AUDIO or not self.mime_type:
            return None
        return AudioInput(base64_data=self.content, mime_type=self.mime_type)

    @property
    def is_error(self) -> bool:
        """Check whether this message is an error placeholder."""
        return isinstance(self.reply, ErrorReply)


class Session(BaseModel):
    """One ordered conversation thread."""

    id: str = Field(default_factory=generate_id, description="Unique session ID")
    title: str = Field(default=DEFAULT_SESSION_TITLE, description="Display title")
    messages: list[Message] = Field(default_factory=list, description="Append-only message log")
    updated_at: float = Field(default_factory=_now_ms, description="Last activity in epoch ms")

    def with_message(self, message: Message, title: str | None = None) -> "Session":
        """
        Return a copy of this session with a message appended.

        Args:
            message: Message to append.
            title: Replacement title, or None to keep the current one.

        Returns:
            Updated session copy.
        """
        return self.model_copy(
            update={
                "messages": [*self.messages, message],
                "updated_at": max(_now_ms(), self.updated_at),
                "title": title if title is not None else self.title,
            }
        )
