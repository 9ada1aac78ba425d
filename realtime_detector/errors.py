class DetectorError(Exception):
    """Base class for all detection pipeline errors."""


class EncodingError(DetectorError):
    """Frame could not be converted into an input tensor."""


class ModelLoadError(DetectorError):
    """Model artifact is missing, corrupt, or incompatible with the runtime."""


class InferenceError(DetectorError):
    """The inference engine rejected or failed a run."""


class DecodingError(DetectorError):
    """Model output does not have the expected shape."""
