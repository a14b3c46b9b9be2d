#!/usr/bin/env python3
"""
Main entry point for HeartMend.
Allows running the package with: python -m heartmend
"""
import sys
import threading

from .config import get_config, MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE, VISUALIZER_WIDTH
from .session import (
    SessionOrchestrator, AudioSettings, VoiceGender, EventType,
    collect_profile, TurnState
)
from .infrastructure.audio.processing import render_bars
from .utils import setup_logging

HELP_TEXT = """
Commands:
  /mic              speak instead of typing (stops at your first pause)
  /stop             stop listening or stop the AI voice
  /relax            start or stop the guided breathing exercise
  /voice male|female
  /volume 0.0-1.0
  /speed 0.5-2.0
  /context          show the session context
  /help             show this help
  /quit             end the session
""".strip()

_print_lock = threading.Lock()


def _say(text: str) -> None:
    with _print_lock:
        print(text, flush=True)


def _parse_float_flag(arg: str, name: str, usage: str) -> float:
    try:
        return float(arg.split("=", 1)[1])
    except (ValueError, IndexError):
        print(f"❌ Invalid {name} value. Use {usage}")
        sys.exit(1)


def _show_spectrum(levels) -> None:
    with _print_lock:
        sys.stdout.write(f"\r🎙️  {render_bars(levels, VISUALIZER_WIDTH)}")
        sys.stdout.flush()


def _attach_printer(orchestrator: SessionOrchestrator) -> None:
    """Print AI messages, transcripts and notifications as they happen."""

    def on_message(event):
        if event.data["sender"] == "ai":
            _say(f"\n🤖 {event.data['text']}\n")

    def on_notification(event):
        icon = "⚠️ " if event.data["destructive"] else "✅"
        _say(f"{icon} {event.data['title']}: {event.data['description']}")

    def on_listening_started(event):
        _say("🎧 Listening (will stop when you finish speaking)...")

    def on_listening_stopped(event):
        with _print_lock:
            sys.stdout.write("\r" + " " * (VISUALIZER_WIDTH + 4) + "\r")
        if event.data["transcript"]:
            _say(f"💬 \"{event.data['transcript']}\"")

    orchestrator.event_bus.subscribe(EventType.MESSAGE_APPENDED, on_message)
    orchestrator.event_bus.subscribe(EventType.NOTIFICATION_RAISED, on_notification)
    orchestrator.event_bus.subscribe(EventType.LISTENING_STARTED, on_listening_started)
    orchestrator.event_bus.subscribe(EventType.LISTENING_STOPPED, on_listening_stopped)


def _handle_command(orchestrator: SessionOrchestrator, line: str) -> bool:
    """Run a slash command. Returns False when the session should end."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command in ("/quit", "/exit"):
        return False
    if command == "/help":
        _say(HELP_TEXT)
    elif command == "/mic":
        orchestrator.start_listening()
    elif command == "/stop":
        if not orchestrator.stop_listening() and not orchestrator.stop_speaking():
            _say("Nothing to stop.")
    elif command == "/relax":
        if orchestrator.toggle_relaxation_exercise():
            _say("🧘 Starting the relaxation exercise...")
        elif orchestrator.turn_state == TurnState.AWAITING_AI_TEXT:
            _say("⏳ Please wait for the current reply first.")
    elif command == "/voice":
        try:
            orchestrator.set_voice(VoiceGender(argument.lower()))
            _say(f"🗣️  Voice set to {argument.lower()}")
        except ValueError:
            _say("Usage: /voice male|female")
    elif command in ("/volume", "/speed"):
        try:
            value = float(argument)
        except ValueError:
            _say(f"Usage: {command} <number>")
            return True
        if command == "/volume":
            _say(f"🔉 Volume: {orchestrator.set_volume(value):.2f}")
        else:
            _say(f"⏩ Speed: {orchestrator.set_playback_rate(value):.2f}x")
    elif command == "/context":
        context = orchestrator.session_context()
        if context is not None:
            _say("\n".join(f"  {line}" for line in context.lines()))
    else:
        _say(f"Unknown command {command}. Type /help for commands.")
    return True


def main():
    """Command-line interface for the therapy session."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    # TTS configuration with explicit flags taking precedence
    explicit_tts = "--tts" in sys.argv
    explicit_text = "--text" in sys.argv or "--no-tts" in sys.argv

    if explicit_text:
        use_tts = False
    elif explicit_tts:
        use_tts = True
    else:
        use_tts = config.enable_tts  # Use config default

    settings = AudioSettings(
        volume=config.speaker_volume,
        playback_rate=config.playback_rate,
        selected_voice=VoiceGender(config.default_voice),
    )
    for arg in sys.argv[1:]:
        if arg.startswith("--volume="):
            settings.set_volume(_parse_float_flag(arg, "volume", "--volume=0.0 to --volume=1.0"))
        elif arg.startswith("--speed="):
            settings.set_playback_rate(_parse_float_flag(
                arg, "speed", f"--speed={MIN_PLAYBACK_RATE} to --speed={MAX_PLAYBACK_RATE}"
            ))
        elif arg.startswith("--voice="):
            try:
                settings.selected_voice = VoiceGender(arg.split("=", 1)[1].lower())
            except ValueError:
                print("❌ Invalid voice. Use --voice=male or --voice=female")
                sys.exit(1)
        elif arg == "--quiet":
            settings.set_volume(0.1)
        elif arg == "--loud":
            settings.set_volume(0.8)

    log_file = setup_logging(config.log_file, config.log_level)

    # Show configuration
    if use_tts:
        print(f"🔊 Voice Mode: the AI will speak its replies ({settings.selected_voice.value} voice)")
        print("   (Use --text or --no-tts to disable speech)")
        print(f"🔉 Volume: {settings.volume:.1f}  Speed: {settings.playback_rate:.2f}x")
        print("   (Use --volume=0.0-1.0, --quiet, --loud or --speed=0.5-2.0)")
    else:
        print("📝 Text Mode: replies will be displayed as text only")
    print(f"📝 Detailed logs: {log_file}")
    print("=" * 50)

    orchestrator = SessionOrchestrator.from_config(
        config, use_tts=use_tts, settings=settings, on_spectrum=_show_spectrum
    )
    _attach_printer(orchestrator)

    try:
        print("\nTell us a little about yourself so we can personalise your session.\n")
        while True:
            profile = collect_profile()
            _say("\n⏳ Personalizing your session...")
            if orchestrator.submit_profile(profile):
                break
            _say("Let's try that again.\n")

        _say("Type your message, or /help for commands.")
        while True:
            line = input("> ").strip()
            if not line:
                continue
            if line.startswith("/"):
                if not _handle_command(orchestrator, line):
                    break
            elif not orchestrator.send_message(line):
                _say("⏳ Please wait for the current reply to finish.")
    except (KeyboardInterrupt, EOFError):
        print()
    finally:
        orchestrator.shutdown()
        print("💙 Take care of yourself. Goodbye.")


if __name__ == "__main__":
    main()
