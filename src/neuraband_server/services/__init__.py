"""Application services: windowing, classification, feeds, storage and the live session lifecycle."""
