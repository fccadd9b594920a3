"""StudySync: realtime chat and shared notes for study groups."""

__version__ = "0.1.0"
