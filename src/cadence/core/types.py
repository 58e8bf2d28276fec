"""Type aliases used across the Cadence pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]
