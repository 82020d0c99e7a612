"""CLI interface: manage the library, settings, notes, and narrate documents."""

import argparse
import asyncio
import logging
import os
import sys

from narrated_reader.constants import DEFAULT_USER, LIBRARY_DIR, SPEED_MIN, SPEED_MAX, VERSION
from narrated_reader.errors import EmptyContent, FallbackFailure, PersistenceFailure
from narrated_reader.models import PlaybackState
from narrated_reader.playback import PlaybackController, PlaybackListener
from narrated_reader.session import SessionTracker
from narrated_reader.store import LibraryStore
from narrated_reader.voices import (
    VOICE_MAP,
    VOICE_DESCRIPTIONS,
    clamp_speed,
    format_time,
    suggest_speed,
)

POLL_SECONDS = 0.2


class ConsoleListener(PlaybackListener):
    """Prints the word being narrated on a single status line."""

    def __init__(self):
        self.controller = None

    def on_word(self, index):
        c = self.controller
        if c is None or not c.word_count:
            return
        word = c.words[min(index, c.word_count - 1)]
        print(f"\r[{c.progress:5.1f}%] {index + 1}/{c.word_count} {word[:30]:<30}", end="", flush=True)

    def on_state(self, state):
        if state in (PlaybackState.PAUSED, PlaybackState.ENDED):
            print()
        print(f"[{state.value}]")

    def on_notice(self, message):
        print(f"\nNotice: {message}")

    def on_error(self, error):
        print(f"\nError: {error}", file=sys.stderr)


def _store(args) -> LibraryStore:
    return LibraryStore(args.library)


def _load_document(store: LibraryStore, user: str, document_id: str):
    document = store.load_document(user, document_id)
    if document is None:
        print(f"Error: Document '{document_id}' not found.", file=sys.stderr)
        print("Run 'narrated-reader add <file>' to add one.", file=sys.stderr)
        raise SystemExit(1)
    return document


def cmd_add(args):
    """Add a plain text document to the library."""
    file_path = args.file
    if not os.path.exists(file_path):
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)

    with open(file_path, encoding="utf-8") as f:
        if not f.read().strip():
            print(f"Error: File is empty: {file_path}", file=sys.stderr)
            raise SystemExit(1)

    try:
        document = _store(args).add_document(args.user, file_path)
    except PersistenceFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    print(f"Added document: {document.id} ({len(document.words)} words)")
    print(f"Run 'narrated-reader read {document.id}' to start listening.")


def cmd_list(args):
    """List documents with reading progress."""
    store = _store(args)
    documents = store.list_documents(args.user)
    if not documents:
        print("No documents found.")
        return
    print("Documents:")
    for document_id in documents:
        document = store.load_document(args.user, document_id)
        session = store.get_session(args.user, document_id)
        words = len(document.words) if document else 0
        position = session.last_position if session else 0
        percent = position / words * 100 if words else 0.0
        print(f"  [{percent:5.1f}%] {document_id}")


def cmd_status(args):
    """Show position, listening time, and notes for a document."""
    store = _store(args)
    document = _load_document(store, args.user, args.document)
    session = store.get_session(args.user, document.id)
    settings = store.get_settings(args.user)
    notes = store.list_notes(args.user, document.id)
    words = len(document.words)

    position = session.last_position if session else 0
    print(f"Document: {document.id}")
    print(f"  Words:          {words}")
    print(f"  Position:       word {position}" + (f" ({position / words * 100:.1f}%)" if words else ""))
    print(f"  Listening time: {format_time(session.total_time if session else 0)}")
    print(f"  Notes:          {len(notes)}")
    print(f"  Speed:          {settings.speed}x (suggested {suggest_speed(words)}x)")
    print(f"  Voice:          {VOICE_DESCRIPTIONS.get(settings.voice_type, settings.voice_type)}")


def cmd_note(args):
    """Add a note at the current (or given) word position."""
    store = _store(args)
    document = _load_document(store, args.user, args.document)
    if args.at is not None:
        position = args.at
    else:
        session = store.get_session(args.user, document.id)
        position = session.last_position if session else 0

    if not 0 <= position <= len(document.words):
        print(f"Error: Position {position} is outside the document (0-{len(document.words)})", file=sys.stderr)
        raise SystemExit(1)

    try:
        note = store.add_note(args.user, document.id, args.text, position)
    except (ValueError, PersistenceFailure) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    print(f"Note added at word {note.timestamp}")


def cmd_notes(args):
    """List notes for a document in reading order."""
    store = _store(args)
    document = _load_document(store, args.user, args.document)
    notes = store.list_notes(args.user, document.id)
    if not notes:
        print("No notes yet.")
        return
    for note in notes:
        print(f"  word {note.timestamp:>6}: {note.note}")


def cmd_set(args):
    """Update narration settings."""
    store = _store(args)
    key, value = args.key, args.value

    if key == "speed":
        try:
            speed = float(value)
        except ValueError:
            print(f"Error: Invalid speed: {value}", file=sys.stderr)
            raise SystemExit(1)
        if clamp_speed(speed) != speed:
            print(f"Warning: Speed {speed} is outside {SPEED_MIN}-{SPEED_MAX} and will be clamped to {clamp_speed(speed)}")
        changes = {"speed": speed}
    elif key == "voice":
        if value.lower() not in VOICE_MAP:
            print(f"Error: Unknown voice: {value}", file=sys.stderr)
            print("Run 'narrated-reader voices' to list voices.", file=sys.stderr)
            raise SystemExit(1)
        changes = {"voice_type": value.lower()}
    else:
        if value not in ("on", "off"):
            print("Error: 'set pomodoro' requires 'on' or 'off'", file=sys.stderr)
            raise SystemExit(1)
        changes = {"pomodoro_enabled": value == "on"}

    try:
        store.update_settings(args.user, **changes)
    except PersistenceFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    print(f"Updated: {key} → {value}")


def cmd_voices(args):
    """List available voices."""
    print("Available voices:")
    for name, voice in VOICE_MAP.items():
        print(f"  {name:<8} {VOICE_DESCRIPTIONS.get(name, '')} [{voice}]")


async def _narrate(controller: PlaybackController) -> None:
    await controller.play()
    while controller.state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
        if controller.state is PlaybackState.PAUSED:
            # focus timer break: wait for the user before continuing
            await asyncio.to_thread(input, "Press Enter to continue...")
            await controller.play()
        await asyncio.sleep(POLL_SECONDS)


def cmd_read(args):
    """Narrate a document from the last saved position."""
    store = _store(args)
    document = _load_document(store, args.user, args.document)
    settings = store.get_settings(args.user)
    tracker = SessionTracker(store, args.user, document.id)
    listener = ConsoleListener()
    controller = PlaybackController(document, tracker, settings=settings, listener=listener)
    listener.controller = controller

    if controller.cursor:
        print(f"Resuming {document.id} at word {controller.cursor}")
    print("Generating audio... (Ctrl+C to pause)")

    try:
        asyncio.run(_narrate(controller))
    except KeyboardInterrupt:
        controller.pause()
        print(f"\nPaused at word {controller.cursor}. Run the same command to resume.")
        return
    except EmptyContent as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    except FallbackFailure as e:
        print(f"Error: Narration failed: {e}", file=sys.stderr)
        raise SystemExit(1)

    if controller.last_error is not None:
        raise SystemExit(1)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="narrated-reader",
        description="Narrated Reader: listen to long documents with a synchronized reading position",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--library", default=LIBRARY_DIR, help="Library directory")
    parser.add_argument("--user", default=DEFAULT_USER, help="User name")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    add_parser = subparsers.add_parser("add", help="Add a plain text document")
    add_parser.add_argument("file", help="Path to the text file")
    add_parser.set_defaults(func=cmd_add)

    list_parser = subparsers.add_parser("list", help="List documents")
    list_parser.set_defaults(func=cmd_list)

    read_parser = subparsers.add_parser("read", help="Narrate a document")
    read_parser.add_argument("document", help="Document id")
    read_parser.set_defaults(func=cmd_read)

    status_parser = subparsers.add_parser("status", help="Show reading status")
    status_parser.add_argument("document", help="Document id")
    status_parser.set_defaults(func=cmd_status)

    note_parser = subparsers.add_parser("note", help="Add a note")
    note_parser.add_argument("document", help="Document id")
    note_parser.add_argument("text", help="Note text")
    note_parser.add_argument("--at", type=int, help="Word position (default: saved position)")
    note_parser.set_defaults(func=cmd_note)

    notes_parser = subparsers.add_parser("notes", help="List notes")
    notes_parser.add_argument("document", help="Document id")
    notes_parser.set_defaults(func=cmd_notes)

    set_parser = subparsers.add_parser("set", help="Update narration settings")
    set_parser.add_argument("key", choices=["speed", "voice", "pomodoro"], help="Setting key")
    set_parser.add_argument("value", help="Setting value")
    set_parser.set_defaults(func=cmd_set)

    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.set_defaults(func=cmd_voices)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
