"""Context managers for structured logging."""

from typing import Dict, Optional

from core.logging.context import get_log_context, set_log_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(stage="publish", event_id=event.event_id):
            # All logs in this block carry stage and event_id
            await do_work()
    """

    def __init__(
        self,
        stage: Optional[str] = None,
        dimension: Optional[str] = None,
        event_id: Optional[str] = None,
    ):
        self.new_context = {
            "stage": stage,
            "dimension": dimension,
            "event_id": event_id,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        for key, value in self.new_context.items():
            if value is not None:
                set_log_context(**{key: value})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Restore old context
        set_log_context(
            stage=self.old_context.get("stage", ""),
            dimension=self.old_context.get("dimension", ""),
            event_id=self.old_context.get("event_id", ""),
        )
        return False
