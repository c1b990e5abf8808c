"""Logging formatters for stderr output."""

import logging


class LevelFormatter(logging.Formatter):
    """Logging formatter that prefixes non-INFO records with their level.

    DevPod shows provider stderr verbatim, so plain INFO lines stay
    unadorned while warnings and errors remain recognizable.

    Parameters
    ----------
    fmt : str | None
        Base format string
    verbose : bool
        Also include the logger name, for debug output
    """

    def __init__(self, fmt: str | None = "%(message)s", verbose: bool = False) -> None:
        super().__init__(fmt)
        self.verbose = verbose

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a level prefix where relevant.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted log message
        """
        msg = super().format(record)

        if self.verbose:
            return f"{record.levelname.lower()} [{record.name}] {msg}"
        if record.levelno != logging.INFO:
            return f"{record.levelname.lower()}: {msg}"

        return msg
