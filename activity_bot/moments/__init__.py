from .service import MAX_NOTE_CHARS, MomentsService

__all__ = ["MAX_NOTE_CHARS", "MomentsService"]
