class TranscriptionError(Exception):
    """Speech-to-text could not produce a transcript for an artifact."""


class PersistenceError(Exception):
    """A Record Store write could not be applied."""


class InvalidTransition(PersistenceError):
    """The requested status change would regress or leave a terminal state."""

    def __init__(self, submission_id, target, current=None):
        self.submission_id = submission_id
        self.target = target
        self.current = current
        super().__init__(
            f"submission {submission_id}: cannot move from {current!r} to {target!r}"
        )


class DuplicateRunError(Exception):
    """A pipeline run for this identity has not resolved yet."""

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"job {job_id} is already queued or running")


class AnalysisParseError(ValueError):
    pass


class ChannelNotConfigured(Exception):
    """A delivery channel lacks credentials or a destination."""
