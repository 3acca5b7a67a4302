"""
Text-based chat interface.

Provides a command-line REPL for practicing with the tutor: typed or spoken
input, rendering of tutor feedback, saved words and pronunciation.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from darija_tutor.db.repository import AppStateRepository, Theme
from darija_tutor.memory.vocabulary_bank import VocabularyBank
from darija_tutor.orchestrator.conversation_orchestrator import ConversationOrchestrator
from darija_tutor.orchestrator.schemas import (
    AudioInput,
    Message,
    MessageKind,
    MessageRole,
    Session,
    TutorResponse,
    VocabItem,
)
from darija_tutor.voice.capture import AudioCapture, AudioValidationError, CaptureError, from_data_uri
from darija_tutor.voice.playback import PCMPlayer, PlaybackError
from darija_tutor.voice.pronunciation import Pronouncer

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  <text>            send a message to the tutor
  /new              start a new conversation
  /list             list conversations (most recent first)
  /open <n|id>      switch to a conversation
  /delete <n|id>    delete a conversation
  /record           record from the microphone (Enter to stop)
  /upload <path|uri> send an audio file or data URI
  /play             replay your latest recording
  /save <n>         save vocabulary item n from the latest reply
  /words            show or hide saved words
  /remove <word>    remove a saved word
  /say <n|text>     pronounce vocabulary item n or any text
  /theme            toggle dark/light theme
  /help             show this help
  /quit             exit"""


class ChatInterfaceBase(ABC):
    """Abstract base class for chat front-ends."""

    @abstractmethod
    async def run(self) -> None:
        """Run the interface."""
        ...

    @abstractmethod
    async def send_message(self, message: str) -> None:
        """
        Show a message to the user.

        Args:
            message: Message to display.
        """
        ...

    @abstractmethod
    async def receive_input(self) -> str:
        """
        Receive input from the user.

        Returns:
            User's input string.
        """
        ...


def render_response(response: TutorResponse, saved: VocabularyBank | None = None) -> str:
    """Format structured tutor feedback for the terminal."""
    lines = [
        f"Transcription: {response.transcription}",
        f"Translation:   {response.translation}",
        "",
        response.explanation,
    ]
    if response.vocabulary:
        lines.append("")
        lines.append("Vocabulary:")
        for i, item in enumerate(response.vocabulary, start=1):
            marker = "*" if saved is not None and saved.contains(item.word) else " "
            lines.append(f" {marker}{i:>2}. {item.word} - {item.meaning}")
            if item.notes:
                lines.append(f"       {item.notes}")
    return "\n".join(lines)


def render_message(message: Message, saved: VocabularyBank | None = None) -> str:
    """Format one message for the terminal."""
    if message.role == MessageRole.USER:
        if message.kind == MessageKind.AUDIO:
            return f"You: [audio message, {message.mime_type}, {len(message.content) * 3 // 4} bytes]"
        return f"You: {message.content}"
    if message.response is not None:
        return "Tutor:\n" + render_response(message.response, saved)
    return f"Tutor: {message.content}"


class ChatInterface(ChatInterfaceBase):
    """
    Command-line chat interface.

    Sends run as background tasks, so commands keep working while the tutor
    is thinking; each reply is printed when it lands.
    """

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        vocabulary: VocabularyBank,
        capture: AudioCapture | None = None,
        pronouncer: Pronouncer | None = None,
        state_repository: AppStateRepository | None = None,
        player: PCMPlayer | None = None,
    ) -> None:
        """
        Initialize the chat interface.

        Args:
            orchestrator: Conversation orchestrator to drive.
            vocabulary: Saved-words bank.
            capture: Audio capture adapter (None disables /record and /upload).
            pronouncer: Pronunciation helper (None disables /say).
            state_repository: Used to persist the theme flag.
            player: Replays recorded messages (None disables /play).
        """
        self._orchestrator = orchestrator
        self._vocabulary = vocabulary
        self._capture = capture
        self._pronouncer = pronouncer
        self._state_repository = state_repository
        self._player = player
        self._theme: Theme = state_repository.load_theme() if state_repository else "light"
        self._pending: set[asyncio.Task] = set()

        self._orchestrator.add_loading_listener(self._on_loading)

    @property
    def theme(self) -> Theme:
        """Get the current theme flag."""
        return self._theme

    async def run(self) -> None:
        """Run the interactive chat session."""
        print("\n" + "=" * 60)
        print("Welcome to Darija Tutor")
        print("=" * 60)
        print("Speak or type in Darija or English to get feedback. /help for commands.\n")

        current = self._orchestrator.current_session
        if current is not None:
            await self._show_session(current)

        while True:
            line = await self.receive_input()
            if not await self.handle_line(line):
                break

        if self._pending:
            print("Waiting for pending replies...")
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def send_message(self, message: str) -> None:
        """
        Display a message to the terminal.

        Args:
            message: Message to display.
        """
        print(f"\n{message}\n")

    async def receive_input(self) -> str:
        """
        Get input from the terminal.

        Returns:
            User's input string.
        """
        return await self._get_input("You: ")

    async def _get_input(self, prompt: str) -> str:
        # Read in a worker thread so background sends keep running.
        try:
            return await asyncio.to_thread(input, prompt)
        except EOFError:
            return "/quit"

    async def handle_line(self, line: str) -> bool:
        """
        Handle one line of user input.

        Returns:
            False when the user asked to quit.
        """
        text = line.strip()
        if not text:
            return True
        if not text.startswith("/"):
            self._start_send(text=text)
            return True

        command, _, arg = text.partition(" ")
        arg = arg.strip()
        command = command.lower()

        if command in ("/quit", "/exit"):
            return False
        if command == "/help":
            await self.send_message(HELP_TEXT)
        elif command == "/new":
            session = self._orchestrator.new_session()
            await self.send_message(f"Started: {session.title}")
        elif command == "/list":
            await self.send_message(self._format_session_list())
        elif command == "/open":
            await self._open_session(arg)
        elif command == "/delete":
            await self._delete_session(arg)
        elif command == "/record":
            await self._record()
        elif command == "/upload":
            await self._upload(arg)
        elif command == "/save":
            await self._save_word(arg)
        elif command == "/play":
            await self._play_recording()
        elif command == "/words":
            if self._vocabulary.toggle():
                await self.send_message(self._format_saved_words())
            else:
                await self.send_message("Saved words hidden.")
        elif command == "/remove":
            if self._vocabulary.remove(arg):
                await self.send_message(f"Removed: {arg}")
            else:
                await self.send_message(f"Not saved: {arg}")
        elif command == "/say":
            await self._say(arg)
        elif command == "/theme":
            await self._toggle_theme()
        else:
            await self.send_message(f"Unknown command: {command}. Type /help for commands.")
        return True

    def _on_loading(self, loading: bool) -> None:
        if loading:
            print("[Tutor] Thinking...", flush=True)

    def _start_send(self, text: str | None = None, audio: AudioInput | None = None) -> asyncio.Task:
        task = asyncio.create_task(self._send_and_render(text=text, audio=audio))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send_and_render(self, text: str | None = None, audio: AudioInput | None = None) -> None:
        reply = await self._orchestrator.send(text=text, audio=audio)
        if reply is not None:
            await self.send_message(render_message(reply, self._vocabulary))

    async def wait_pending(self) -> None:
        """Wait for every in-flight send to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _resolve_session(self, ref: str) -> Session | None:
        sessions = self._orchestrator.list_sessions()
        if ref.isdigit() and 1 <= int(ref) <= len(sessions):
            return sessions[int(ref) - 1]
        for session in sessions:
            if session.id == ref:
                return session
        return None

    def _format_session_list(self) -> str:
        sessions = self._orchestrator.list_sessions()
        if not sessions:
            return "No conversations yet. Type a message or /new to start."
        current_id = self._orchestrator.store.current_session_id
        lines = []
        for i, session in enumerate(sessions, start=1):
            marker = ">" if session.id == current_id else " "
            when = datetime.fromtimestamp(session.updated_at / 1000).strftime("%Y-%m-%d %H:%M")
            lines.append(f"{marker}{i:>3}. {session.title}  ({len(session.messages)} messages, {when}) [{session.id}]")
        return "\n".join(lines)

    async def _show_session(self, session: Session) -> None:
        print(f"\n--- {session.title} ---")
        for message in session.messages:
            print(render_message(message, self._vocabulary))

    async def _open_session(self, ref: str) -> None:
        session = self._resolve_session(ref)
        if session is None:
            await self.send_message(f"No such conversation: {ref}")
            return
        self._orchestrator.select_session(session.id)
        await self._show_session(session)

    async def _delete_session(self, ref: str) -> None:
        session = self._resolve_session(ref)
        if session is None:
            await self.send_message(f"No such conversation: {ref}")
            return
        answer = await self._get_input("Are you sure you want to delete this chat? [y/N] ")
        confirmed = answer.strip().lower() in ("y", "yes")
        if self._orchestrator.delete_session(session.id, confirm=lambda: confirmed):
            await self.send_message(f"Deleted: {session.title}")

    async def _record(self) -> None:
        if self._capture is None:
            await self.send_message("Audio capture is disabled.")
            return
        if self._capture.is_recording:
            await self.send_message("Already recording.")
            return
        try:
            await self._capture.start()
        except CaptureError as e:
            await self.send_message(str(e))
            return

        try:
            await self._get_input("[Voice] Recording... press Enter to stop. ")
        except BaseException:
            await self._capture.cancel()
            raise

        try:
            audio = await self._capture.stop()
        except CaptureError as e:
            await self.send_message(str(e))
            return
        self._start_send(audio=audio)

    async def _upload(self, path: str) -> None:
        if self._capture is None:
            await self.send_message("Audio capture is disabled.")
            return
        if not path:
            await self.send_message("Usage: /upload <path>")
            return
        try:
            if path.startswith("data:"):
                audio = from_data_uri(path)
            else:
                audio = self._capture.load_file(Path(path).expanduser())
        except AudioValidationError as e:
            await self.send_message(str(e))
            return
        self._start_send(audio=audio)

    def _latest_vocabulary(self) -> list[VocabItem]:
        session = self._orchestrator.current_session
        if session is None:
            return []
        for message in reversed(session.messages):
            if message.response is not None:
                return list(message.response.vocabulary)
        return []

    def _vocab_by_number(self, ref: str) -> VocabItem | None:
        items = self._latest_vocabulary()
        if ref.isdigit() and 1 <= int(ref) <= len(items):
            return items[int(ref) - 1]
        return None

    async def _save_word(self, ref: str) -> None:
        item = self._vocab_by_number(ref)
        if item is None:
            await self.send_message(f"No vocabulary item {ref!r} in the latest reply.")
            return
        if self._vocabulary.save(item):
            message = f"Saved: {item.word}"
            if self._vocabulary.is_open:
                message += f"\n\n{self._format_saved_words()}"
            await self.send_message(message)
        else:
            await self.send_message(f"Already saved: {item.word}")

    def _format_saved_words(self) -> str:
        items = self._vocabulary.items()
        if not items:
            return "No words saved yet."
        lines = [f"Saved words ({len(items)}):"]
        for item in items:
            lines.append(f"  {item.word} - {item.meaning}")
            if item.notes:
                lines.append(f"      {item.notes}")
        return "\n".join(lines)

    async def _say(self, ref: str) -> None:
        if self._pronouncer is None:
            await self.send_message("Pronunciation is disabled.")
            return
        item = self._vocab_by_number(ref)
        text = item.word if item is not None else ref
        try:
            await self._pronouncer.pronounce(text)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to pronounce: {e}")
            await self.send_message("Could not generate audio. Please check your connection.")

    async def _play_recording(self) -> None:
        if self._player is None:
            await self.send_message("Audio playback is disabled.")
            return
        session = self._orchestrator.current_session
        audio = None
        if session is not None:
            for message in reversed(session.messages):
                if message.audio is not None:
                    audio = message.audio
                    break
        if audio is None:
            await self.send_message("No recording in this conversation.")
            return
        try:
            await self._player.play_recording(audio)
        except PlaybackError as e:
            logger.error(f"Failed to replay recording: {e}")
            await self.send_message(str(e))

    async def _toggle_theme(self) -> None:
        self._theme = "light" if self._theme == "dark" else "dark"
        if self._state_repository is not None:
            self._state_repository.save_theme(self._theme)
        await self.send_message(f"Theme: {self._theme}")
