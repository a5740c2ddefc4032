"""Exception hierarchy for decoding, analysis, and export failures."""


class WaveframeError(Exception):
    """Base class for all waveframe errors."""


class DecodeError(WaveframeError):
    """Audio input could not be decoded (unsupported or corrupt)."""


class AnalyzerUnavailable(WaveframeError):
    """A frequency snapshot was requested before any analysis ran."""


class EncodeError(WaveframeError):
    """
    The encoder rejected a start/stop request or produced no output.

    ``reason`` distinguishes the failure kinds:

    - ``"unavailable"``: no encoder binary on this system
    - ``"unsupported"``: the requested codec pair is not available
    - ``"failed"``: the encoder process errored
    - ``"empty"``: the encoder finished but yielded zero bytes
    """

    def __init__(self, message: str, reason: str = "failed"):
        super().__init__(message)
        self.reason = reason


class InvalidExportState(WaveframeError):
    """An export was requested while another one is still running."""
