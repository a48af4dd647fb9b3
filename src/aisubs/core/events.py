"""Job event system for streaming progress to external consumers.

Provides a lightweight callback mechanism that translation jobs emit events through.
Consumers (CLI progress output, the HTTP server, tests) register a callback to
receive real-time updates without modifying coordinator logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable


@dataclass
class PipelineEvent:
    """A progress event emitted during a translation job.

    Attributes:
        key: Job key the event belongs to (e.g. "movie/tt0111161@el").
        stage: Job stage name (fetch, parse, translate, serialize, cache).
        progress: Progress within this stage, 0.0 to 1.0.
        message: Human-readable status message.
        data: Optional payload (e.g. cue counts, fingerprints).
    """

    key: str
    stage: str
    progress: float
    message: str
    data: dict | None = field(default=None)


EventCallback = Callable[[PipelineEvent], None]
