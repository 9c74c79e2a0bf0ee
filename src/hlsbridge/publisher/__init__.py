"""Publishing of HLS output to stable locations."""

from .live import PublishLoop, PublishResult

__all__ = ["PublishLoop", "PublishResult"]
