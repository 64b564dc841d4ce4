"""Error logging helpers.

``log_error`` keeps the ``(message, title)`` shape of the error log the
progress engine reports to, so call sites read the same whether the record
ends up in a log file or an error table.
"""

import logging
from typing import Optional

logger = logging.getLogger("hackpath.errors")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def log_error(message: str, title: Optional[str] = None, exc_info: bool = False) -> None:
	"""Record an error that was handled and not raised to the caller.

	Args:
		message: What went wrong, including the identifiers involved
		title: Short category shown before the message (e.g. "Local Progress Error")
		exc_info: Attach the active exception traceback
	"""
	if title:
		logger.error(f"{title}: {message}", exc_info=exc_info)
	else:
		logger.error(message, exc_info=exc_info)


def configure_logging(level: str = "INFO") -> None:
	"""Configure root logging for scripts and application entry points.

	Args:
		level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
	"""
	logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
