class LearnError(Exception):
    """Base class for errors raised by the tree learners."""


class ConfigurationError(LearnError, ValueError):
    """Invalid hyperparameters, or a model used before it was fit."""


class ShapeError(LearnError, ValueError):
    """Matrix/vector dimensions do not agree."""


class FeatureIndexError(LearnError, IndexError):
    """A row or column index is out of range for a feature matrix."""


class InsufficientDataError(LearnError, ValueError):
    """Training data is empty or has too few distinct labels."""
