class QuizFlowError(Exception):
	"""Base class for quiz and exam flow failures surfaced to the caller."""


class QuizNotFound(QuizFlowError):
	pass


class NoQuestionsAvailable(QuizFlowError):
	pass


class SessionNotFound(QuizFlowError):
	pass


class InvalidAnswer(QuizFlowError):
	pass


class InvalidTransition(QuizFlowError):
	"""Operation not allowed in the session's current state."""


class PersistenceUnavailable(QuizFlowError):
	"""A read or write needed to start a session failed."""
