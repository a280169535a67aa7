"""Watch mode for repeated imports."""

from .service import PipelineRunner, WatchCycle, WatchLoop, WatchState

__all__ = ["PipelineRunner", "WatchCycle", "WatchLoop", "WatchState"]
