"""JSON-file persistence for documents, listening sessions, notes, and settings.

Layout under the library directory:

    <library>/<user>/documents/<document_id>.txt
    <library>/<user>/sessions.json   {document_id: session}
    <library>/<user>/notes.json      {document_id: [note, ...]}
    <library>/<user>/settings.json
"""

import json
import logging
import os
import re
import uuid
from datetime import datetime, timezone

from narrated_reader.constants import LIBRARY_DIR
from narrated_reader.errors import PersistenceFailure
from narrated_reader.models import Document, ListeningSession, NarrationSettings, Note

logger = logging.getLogger(__name__)


def slug_from_path(path: str) -> str:
    """Convert a filename to a document id.

    "Tell-Tale Heart.txt" → "tell_tale_heart"
    """
    basename = os.path.splitext(os.path.basename(path))[0]
    return re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower()


def user_slug(user_id: str) -> str:
    """Convert a user id to a directory name, keeping dots.

    "john.doe" → "john.doe", "../x" → "x"
    """
    return re.sub(r"[^A-Za-z0-9._-]+", "_", user_id).strip("._")


def write_json(path: str, data) -> str:
    """Write JSON atomically. Raises PersistenceFailure on I/O errors."""
    tmp_path = path + ".tmp"
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        raise PersistenceFailure(f"could not write {path}: {e}") from e
    return path


def load_json(path: str, default=None):
    """Read JSON. Missing or malformed files yield default."""
    if not os.path.exists(path):
        return default
    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError:
        logger.warning("Malformed store file: %s, ignoring", path)
        return default


class LibraryStore:
    def __init__(self, base_dir: str = LIBRARY_DIR):
        self.base_dir = base_dir

    def _user_dir(self, user_id: str) -> str:
        return os.path.join(self.base_dir, user_slug(user_id) or "anonymous")

    def _path(self, user_id: str, filename: str) -> str:
        return os.path.join(self._user_dir(user_id), filename)

    # --- Documents ---

    def add_document(self, user_id: str, source_path: str) -> Document:
        """Copy an already-extracted plain text file into the library."""
        with open(source_path, encoding="utf-8") as f:
            content = f.read()
        document_id = slug_from_path(source_path)
        target = self._path(user_id, os.path.join("documents", f"{document_id}.txt"))
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise PersistenceFailure(f"could not store document {document_id}: {e}") from e
        return Document(id=document_id, name=os.path.basename(source_path), content=content)

    def load_document(self, user_id: str, document_id: str) -> Document | None:
        path = self._path(user_id, os.path.join("documents", f"{document_id}.txt"))
        if not os.path.exists(path):
            return None
        with open(path, encoding="utf-8") as f:
            content = f.read()
        return Document(id=document_id, name=os.path.basename(path), content=content)

    def list_documents(self, user_id: str) -> list[str]:
        doc_dir = self._path(user_id, "documents")
        if not os.path.isdir(doc_dir):
            return []
        return sorted(os.path.splitext(name)[0] for name in os.listdir(doc_dir) if name.endswith(".txt"))

    # --- Sessions ---

    def get_session(self, user_id: str, document_id: str) -> ListeningSession | None:
        sessions = load_json(self._path(user_id, "sessions.json"), default={})
        data = sessions.get(document_id)
        if data is None:
            return None
        return ListeningSession.from_dict(data)

    def upsert_session(self, session: ListeningSession) -> None:
        path = self._path(session.user_id, "sessions.json")
        sessions = load_json(path, default={})
        sessions[session.document_id] = session.to_dict()
        write_json(path, sessions)

    # --- Notes ---

    def add_note(self, user_id: str, document_id: str, text: str, timestamp: int) -> Note:
        text = text.strip()
        if not text:
            raise ValueError("note text is empty")
        note = Note(
            id=uuid.uuid4().hex,
            document_id=document_id,
            note=text,
            timestamp=timestamp,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        path = self._path(user_id, "notes.json")
        notes = load_json(path, default={})
        notes.setdefault(document_id, []).append(note.to_dict())
        write_json(path, notes)
        return note

    def list_notes(self, user_id: str, document_id: str) -> list[Note]:
        """Notes for a document ordered by word position, then creation time."""
        notes = load_json(self._path(user_id, "notes.json"), default={})
        entries = [Note(**entry) for entry in notes.get(document_id, [])]
        return sorted(entries, key=lambda n: (n.timestamp, n.created_at))

    # --- Settings ---

    def get_settings(self, user_id: str) -> NarrationSettings:
        """Settings for a user; defaults are written on first read."""
        path = self._path(user_id, "settings.json")
        data = load_json(path)
        if data is None:
            settings = NarrationSettings()
            try:
                write_json(path, settings.to_dict())
            except PersistenceFailure as e:
                logger.warning("Could not create default settings: %s", e)
            return settings
        return NarrationSettings.from_dict(data)

    def update_settings(self, user_id: str, **changes) -> NarrationSettings:
        current = self.get_settings(user_id).to_dict()
        unknown = set(changes) - set(current)
        if unknown:
            raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")
        current.update(changes)
        settings = NarrationSettings.from_dict(current)
        write_json(self._path(user_id, "settings.json"), settings.to_dict())
        return settings
