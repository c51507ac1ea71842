"""Module containing custom exceptions."""


class AlphaLfqError(Exception):
    """Custom alphaLFQ error class."""

    _error_code = ""
    _msg = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return self._msg

    def __init__(self, msg: str = ""):
        self._user_msg = msg

        super().__init__(msg or self._msg)

    def __str__(self):
        detail = f"\n'{self._user_msg}'" if self._user_msg else ""
        return f"{self._error_code}: {self._msg}{detail}"


class UsageError(AlphaLfqError, ValueError):
    """Raise when the library is called in a way its contract forbids.

    A usage error is a programmer mistake (wrong peak type, missing
    identification, invalid parameters) and is never retried.
    """

    _error_code = "USAGE_ERROR"
    _msg = "Invalid use of the quantification API."


class ScorerFileMismatchError(UsageError):
    """Raise when an MBR peak is scored with a scorer built for another file."""

    _error_code = "SCORER_FILE_MISMATCH"
    _msg = "Error when performing match-between-runs: Mismatch between scorer and peak."
