"""Stack-based, persisted dialog orchestration for turn-driven conversations."""

__version__ = "0.1.0"
