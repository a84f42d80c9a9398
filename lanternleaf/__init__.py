"""lanternleaf - paginated reading engine with a TTS-aligned sentence cursor."""

__version__ = "0.1.0"
