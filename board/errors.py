class BoardError(Exception):
    """Base class for board errors"""


class BackendError(BoardError):
    """A call to the backend service failed"""


class SubmitError(BoardError):
    """Inserting a post failed in a way the user has to see"""
