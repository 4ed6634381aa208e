from .engine import CallbackOutcome, JobLifecycleEngine

__all__ = ["CallbackOutcome", "JobLifecycleEngine"]
