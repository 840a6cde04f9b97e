"""Error taxonomy for the texture pixel-transform core.

Every error is raised before any pixel work starts, so a failed call never
returns partial output.  Non-fatal anomalies (near-constant histograms,
heavy tails) are reported as warnings on result objects instead.
"""


class TextureConversionError(Exception):
    """Base class for all recoverable conversion errors."""


class UnsupportedImageKind(TextureConversionError, ValueError):
    """Source image has zero area or an unsupported channel count."""


class DimensionMismatch(TextureConversionError, ValueError):
    """Paired inputs disagree on their level-0 (or per-level) dimensions."""


class UnsupportedChannelLayout(TextureConversionError, ValueError):
    """An image lacks the channels an operation needs."""


class InvalidParameter(TextureConversionError, ValueError):
    """Settings are out of range or malformed."""


class ConversionCancelled(TextureConversionError, RuntimeError):
    """Raised between levels or chains when a cancel event is set."""
