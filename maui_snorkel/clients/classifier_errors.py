"""Errors shared by the text and image classifier clients."""


class ClassifierError(Exception):
    """Base error for classifier calls."""

    pass


class ClassifierUnavailable(ClassifierError):
    """The classifier could not be reached or is not configured."""

    pass


class ClassifierMalformed(ClassifierError):
    """The classifier answered, but not in the expected structure."""

    pass
