"""SLA timer processing."""

from .processor import SlaProcessor
from .runner import SlaTaskRunner

__all__ = ["SlaProcessor", "SlaTaskRunner"]
