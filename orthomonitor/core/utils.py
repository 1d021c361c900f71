import json
import logging
from typing import Any, Dict, Optional, Union

LogMessage = Union[str, Dict[str, Any]]


class LoggerMixin:
    """
    Structured logging helpers for services and routes.

    Events are usually dicts such as ``{"event": "scan_session_created",
    "session_id": "..."}``; they are rendered as compact JSON so log
    aggregation can parse them. Plain strings pass through untouched.
    """

    _logger: Optional[logging.Logger] = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = logging.getLogger(
                f"orthomonitor.{self.__class__.__name__}"
            )
        return self._logger

    @staticmethod
    def _format_message(message: LogMessage) -> str:
        if isinstance(message, dict):
            return json.dumps(message, default=str, sort_keys=True)
        return message

    def log_info(self, message: LogMessage, **kwargs) -> None:
        self.logger.info(self._format_message(message), **kwargs)

    def log_warning(self, message: LogMessage, **kwargs) -> None:
        self.logger.warning(self._format_message(message), **kwargs)

    def log_error(self, message: LogMessage, exc_info: bool = False, **kwargs) -> None:
        self.logger.error(self._format_message(message), exc_info=exc_info, **kwargs)

    def log_debug(self, message: LogMessage, **kwargs) -> None:
        self.logger.debug(self._format_message(message), **kwargs)

    def log_security_event(self, message: LogMessage, **kwargs) -> None:
        """Warning-level entry prefixed with ``SECURITY EVENT:`` for filtering."""
        self.logger.warning(
            f"SECURITY EVENT: {self._format_message(message)}", **kwargs
        )


class _ModuleLevelLogger(LoggerMixin):

    def __init__(self):
        self._logger = logging.getLogger("orthomonitor")


logger = _ModuleLevelLogger()
