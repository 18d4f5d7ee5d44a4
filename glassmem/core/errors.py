"""
Error taxonomy. Structural failures are typed exceptions; soft failures are None or empty results.
"""


class GlassmemError(Exception):
    """Root of all glassmem errors."""


class ChannelError(GlassmemError):
    """Misuse of a TimestampedChannel."""


class AlreadyAttached(ChannelError):
    """attach() called while a producer is already attached."""

    def __init__(self, channel: str = "channel"):
        super().__init__(f"Channel '{channel}' already has an attached producer")
        self.channel = channel


class PipelineError(GlassmemError):
    """Invalid AgentPipeline state transition."""


class AlreadyEnabled(PipelineError):
    def __init__(self, state: str = "enabled"):
        super().__init__(f"Pipeline cannot be enabled from state '{state}'")
        self.state = state


class NotEnabled(PipelineError):
    def __init__(self, state: str = "disabled"):
        super().__init__(f"Pipeline is not enabled (state '{state}')")
        self.state = state


class EmbeddingIndexError(GlassmemError):
    """Embedding index failure."""


class DimensionMismatch(EmbeddingIndexError, ValueError):
    """Vector length does not match the index's fixed dimensionality."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimension {actual} does not match expected dimension {expected}")
        self.expected = expected
        self.actual = actual


class ValueTypeError(GlassmemError, TypeError):
    """A tagged Value was read as the wrong type through a strict accessor."""
