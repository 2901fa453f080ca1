"""Content publishing orchestrator: lifecycle state machine + publish/generation scheduler."""
__version__ = "0.1.0"
