"""
Main entry point for the Darija Tutor application.
"""

import argparse
import asyncio
import logging
import sys

from darija_tutor.config import Settings, get_settings
from darija_tutor.db.repository import AppStateRepository, SqlKeyValueStore
from darija_tutor.io.text_interface import ChatInterface
from darija_tutor.memory.vocabulary_bank import VocabularyBank
from darija_tutor.models.tutor_client import GeminiTutorClient
from darija_tutor.orchestrator.conversation_orchestrator import ConversationOrchestrator
from darija_tutor.orchestrator.session_store import SessionStore
from darija_tutor.voice.capture import AudioCapture, CaptureConfig
from darija_tutor.voice.playback import OutputDevice, PCMPlayer, PlaybackConfig
from darija_tutor.voice.pronunciation import Pronouncer


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser; defaults come from settings."""
    settings = get_settings()
    p = argparse.ArgumentParser(prog="darija-tutor", description="Practice Moroccan Darija with an AI tutor")
    p.add_argument(
        "--storage-url",
        default=settings.storage_url,
        help="SQLAlchemy URL for saved conversations (default: DARIJA_TUTOR_STORAGE_URL)",
    )
    p.add_argument(
        "--no-audio",
        action="store_true",
        help="Disable microphone capture, uploads and pronunciation playback",
    )
    p.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: DARIJA_TUTOR_LOG_LEVEL or INFO)",
    )
    return p


async def run_chat(args: argparse.Namespace, settings: Settings) -> None:
    """
    Run an interactive chat session.

    Loads persisted state, wires every component, and runs the terminal
    interface until the user quits.
    """
    logger = logging.getLogger(__name__)
    logger.info("Initializing Darija Tutor...")

    repository = AppStateRepository(SqlKeyValueStore(url=args.storage_url))
    store = SessionStore(repository.load_sessions(), on_change=repository.save_sessions)
    vocabulary = VocabularyBank(repository.load_vocabulary(), on_change=repository.save_vocabulary)
    logger.debug(f"Loaded {len(store)} sessions and {len(vocabulary)} saved words")

    client = GeminiTutorClient(
        api_key=settings.api_key,
        base_url=settings.api_base_url,
        analysis_model=settings.analysis_model,
        speech_model=settings.speech_model,
        voice=settings.speech_voice,
        timeout=settings.request_timeout,
    )
    if not settings.api_key:
        logger.warning("No API key configured; tutor requests will fail until DARIJA_TUTOR_API_KEY is set")

    orchestrator = ConversationOrchestrator(client=client, store=store)

    capture = None
    pronouncer = None
    player = None
    device = None
    if not args.no_audio:
        capture = AudioCapture(
            CaptureConfig(
                sample_rate=settings.capture_sample_rate,
                max_upload_bytes=settings.max_upload_bytes,
            )
        )
        device = OutputDevice(PlaybackConfig(sample_rate=settings.playback_sample_rate))
        player = PCMPlayer(device)
        pronouncer = Pronouncer(client, player)

    interface = ChatInterface(
        orchestrator,
        vocabulary,
        capture=capture,
        pronouncer=pronouncer,
        state_repository=repository,
        player=player,
    )

    try:
        await interface.run()
    finally:
        await client.close()
        if device is not None:
            device.close()


def main() -> None:
    """Main entry point for the application."""
    settings = get_settings()
    args = build_parser().parse_args(sys.argv[1:])
    setup_logging(args.log_level)

    try:
        asyncio.run(run_chat(args, settings))
    except KeyboardInterrupt:
        print("\nSession terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
