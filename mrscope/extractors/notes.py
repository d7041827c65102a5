"""Note data extractors (top-level notes and discussion threads)."""

from ..models import NoteRecord
from .merge_requests import extract_user, parse_datetime_required


def extract_note(note_data: dict) -> NoteRecord:
    """Extract a note from GitLab API response."""
    return NoteRecord(
        id=note_data["id"],
        author=extract_user(note_data.get("author")),
        body=note_data.get("body") or "",
        created_at=parse_datetime_required(note_data["created_at"]),
        system=note_data.get("system", False),
    )


def extract_discussion_notes(discussions_data: list[dict]) -> list[NoteRecord]:
    """Flatten discussion threads into their notes."""
    notes = []
    for discussion in discussions_data:
        for note_data in discussion.get("notes") or []:
            notes.append(extract_note(note_data))
    return notes
