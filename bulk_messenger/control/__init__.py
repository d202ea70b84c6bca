"""Job control API."""

from .api import JobControlAPI
from .models import ControlAction, ControlResponse

__all__ = ["JobControlAPI", "ControlAction", "ControlResponse"]
