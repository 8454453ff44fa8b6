# voicetutor/main.py
"""
Console push-to-talk driver.

    voicetutor [--token TOKEN] [--earpiece] [--no-persist] [--preload]

Press Enter to start talking and Enter again to send the utterance;
"p" pauses, "r" resumes, "q" quits.
"""
import argparse
import asyncio
import logging

from .config import settings
from .core.bootstrap import build_conversation_flow
from .core.db import close_db, init_db
from .core.errors import ConversationError
from .core.logging import configure_logging
from .schemas.conversation import Message
from .services.auth import TokenAuthProvider
from .services.conversation_flow import ConversationFlowController
from .services.storage import ConversationStorageService
from .services.tts_elevenlabs import ElevenLabsSpeechService

logger = logging.getLogger(__name__)

PROMPT = "[Enter] talk  [p] pause  [r] resume  [q] quit > "


def _print_message(message: Message) -> None:
    print(f"{message.role.value:>9}: {message.content}")


async def _talk(flow: ConversationFlowController) -> None:
    await flow.handle_user_input()
    await asyncio.to_thread(input, "Recording... press Enter to send ")
    await flow.finish_user_input()


async def handle_command(flow: ConversationFlowController, command: str) -> bool:
    """Apply one console command. Returns False when the session should end."""
    if command == "q":
        return False
    if command == "p":
        await flow.pause_conversation()
        return True
    if command == "r":
        flow.resume_conversation()
        return True
    if flow.is_paused():
        print("Paused, press r to resume")
        return True
    try:
        await _talk(flow)
    except ConversationError as e:
        print(f"! {e.message}")
        return e.recoverable
    return True


async def run(args: argparse.Namespace) -> int:
    persist = settings.enable_persistence and not args.no_persist
    # users are looked up in the database even when conversations are not stored
    await init_db(generate_schemas=True)

    # PortAudio is loaded on import
    from .services.audio_sounddevice import SoundDeviceAudioIO

    audio = SoundDeviceAudioIO()
    speech = ElevenLabsSpeechService(player=audio)
    flow = build_conversation_flow(
        auth=TokenAuthProvider(args.token or settings.access_token),
        audio=audio,
        speech=speech,
        storage=ConversationStorageService(enabled=persist),
    )
    flow.set_speaker_enabled(not args.earpiece)
    flow.on_message_added = _print_message

    try:
        await flow.start_conversation()
    except ConversationError as e:
        print(f"Could not start: {e.message}")
        if not e.recoverable or not flow.is_active():
            await close_db()
            return 1

    if args.preload:
        context = flow.get_current_context()
        cached = await speech.preload_common_phrases(context.target_language, context.cefr_level)
        logger.info(f"[cli] Preloaded {cached} common phrases")

    try:
        while flow.is_active():
            command = (await asyncio.to_thread(input, PROMPT)).strip().lower()
            if not await handle_command(flow, command):
                break
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await flow.end_conversation()
        await close_db()
    return 0


def cli() -> None:
    parser = argparse.ArgumentParser(prog="voicetutor", description="Talk with the AI language tutor.")
    parser.add_argument("--token", help="access token (default: VOICETUTOR_ACCESS_TOKEN)")
    parser.add_argument("--earpiece", action="store_true", help="play replies on the earpiece device")
    parser.add_argument("--no-persist", action="store_true", help="do not store the conversation")
    parser.add_argument("--preload", action="store_true", help="cache common phrases for the learner's level")
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args()

    configure_logging(args.log_level)
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    cli()
