import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from .audio.input import ListeningMode
from .config.settings import create_example_env_file, load_config, setup_logging
from .core.errors import ConnectionFailedError
from .core.events import CaptureEvent, SessionEvent
from .core.session import VoiceSession

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  <Enter>   start / stop push-to-talk recording
  vad       switch to voice activity detection
  ptt       switch to push-to-talk
  cancel    cancel the current response
  levels    show input and output frequency-band levels
  quit      exit"""


def _print_transcript(text: str) -> None:
    print(text, end="", flush=True)


def _format_levels(label: str, levels) -> str:
    if levels is None:
        return f"{label}: idle"
    return f"{label}: " + " ".join(f"{level:.3f}" for level in levels)


def _wire_console(session: VoiceSession) -> None:
    session.client.events.subscribe(SessionEvent.TRANSCRIPT_DELTA, _print_transcript)
    session.client.events.subscribe(SessionEvent.RESPONSE_DONE, lambda: print())
    session.client.events.subscribe(SessionEvent.ERROR, lambda message: print(f"\n[error] {message}"))
    session.client.events.subscribe(SessionEvent.CLOSED, lambda: print("\n[connection closed]"))
    session.capture.events.subscribe(CaptureEvent.RECORDING_STARTED, lambda: print("[recording]"))
    session.capture.events.subscribe(CaptureEvent.RECORDING_ENDED, lambda: print("[sent]"))


async def handle_command(session: VoiceSession, line: str) -> bool:
    """Apply one console command. Returns False when the session should end."""
    command = line.strip().lower()
    if command in ("quit", "exit"):
        return False
    if command == "":
        session.toggle_recording()
    elif command == "vad":
        session.set_mode(ListeningMode.VAD)
    elif command == "ptt":
        session.set_mode(ListeningMode.PUSH_TO_TALK)
    elif command == "cancel":
        await session.cancel()
    elif command == "levels":
        input_levels, output_levels = session.band_levels()
        print(_format_levels("input", input_levels))
        print(_format_levels("output", output_levels))
    else:
        print(HELP_TEXT)
    return True


async def run_console(session: VoiceSession) -> None:
    loop = asyncio.get_running_loop()
    print(HELP_TEXT)
    while True:
        try:
            line = await loop.run_in_executor(None, input, "> ")
        except EOFError:
            break
        if not await handle_command(session, line):
            break


async def run(config_path: Optional[Path], mode: Optional[str]) -> None:
    config = load_config(config_path)
    setup_logging(config.log_level)
    if mode:
        config = config.model_copy(update={"listening_mode": ListeningMode(mode)})

    session = VoiceSession(config)
    _wire_console(session)
    await session.start()
    try:
        await run_console(session)
    finally:
        await session.stop()


def main():
    parser = argparse.ArgumentParser(description="Realtime voice client")
    parser.add_argument("--config", type=str, help="Path to config file", default=".env")
    parser.add_argument("--create-config", action="store_true", help="Create example config file")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ListeningMode],
        help="Listening mode (overrides LISTENING_MODE)",
    )

    args = parser.parse_args()

    if args.create_config:
        create_example_env_file()
        print("Example configuration file created at .env.example")
        print("Please copy it to .env and fill in your API key.")
        return

    config_path = Path(args.config) if args.config else None

    try:
        asyncio.run(run(config_path, args.mode))
    except ConnectionFailedError as e:
        print(f"Could not connect: {e}")
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("Please check your configuration file and API key.")
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
