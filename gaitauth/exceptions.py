"""Error taxonomy for the gait authentication pipeline."""


class GaitAuthError(Exception):
    """Base class for all pipeline errors."""


class CapabilityUnsupported(GaitAuthError):
    """The device exposes no step-detection sensor."""


class DataShapeError(GaitAuthError):
    """Aligned sensor data does not fill a full feature window."""

    def __init__(self, rows: int, expected: int):
        self.rows = int(rows)
        self.expected = int(expected)
        super().__init__(f"Aligned window has {self.rows} rows, expected {self.expected}")


class ModelLoadError(GaitAuthError):
    """The inference backend could not be initialised."""


class ShapeMismatchError(GaitAuthError):
    """A feature matrix handed to the similarity engine has the wrong shape."""


class PersistenceError(GaitAuthError):
    """Reading or writing the enrollment record failed."""


class RecordingFormatError(GaitAuthError):
    """A recorded sensor session could not be decoded."""


class InferenceError(GaitAuthError):
    """The model loaded but failed to produce a score."""
