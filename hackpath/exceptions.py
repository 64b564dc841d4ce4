"""Exception types raised by the progression engine."""


class HackpathError(Exception):
	"""Base class for all progression engine errors."""


class GraphConfigurationError(HackpathError, ValueError):
	"""Curriculum graph is malformed (dangling edge, cycle, duplicate id)."""


class ValidationError(HackpathError):
	"""Request rejected because it violates a progression rule."""


class DoesNotExistError(HackpathError, LookupError):
	"""Referenced level, hack or check is not part of the curriculum."""
