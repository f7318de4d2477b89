"""SkinJournal API - skin quiz, progress photo journal and routine tracking."""

__version__ = "1.0.0"
