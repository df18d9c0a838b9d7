"""
Error taxonomy for batch submission.

Every error names the job it belongs to: a plan index, or PRE_PLAN when it
happened before any job was considered (e.g. an unknown strategy), or
POST_BATCH for the cleanup that follows the last job.
"""

from typing import Optional, Sequence, Union

PRE_PLAN = "pre-plan"
POST_BATCH = "post-batch"

JobIndex = Union[int, str]


class SparkSubError(Exception):
    """Base class for all sparksub errors."""

    def __init__(self, message: str, index: JobIndex = PRE_PLAN):
        self.index = index
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        where = self.index if isinstance(self.index, str) else f"job {self.index}"
        return f"[{where}] {self.message}"


class InvalidStrategy(SparkSubError):
    """Raised when the planning strategy selector is not known."""

    def __init__(self, strategy: object, known: Sequence[str] = ()):
        self.strategy = strategy
        message = f"Unknown planning strategy {strategy!r}"
        if known:
            message += f" (expected one of: {', '.join(known)})"
        super().__init__(message, PRE_PLAN)


class CleanupFailed(SparkSubError):
    """
    Raised when the gate could not empty the namespace.

    Attributes:
        namespace: The namespace being cleaned.
        failed: Names of pods whose deletion failed (empty if listing failed).
        cause: The underlying cluster error, if any.
    """

    def __init__(
        self,
        namespace: str,
        message: str,
        failed: Sequence[str] = (),
        cause: Optional[BaseException] = None,
        index: JobIndex = PRE_PLAN,
    ):
        self.namespace = namespace
        self.failed = tuple(failed)
        self.cause = cause
        super().__init__(f"Cleanup of namespace '{namespace}' failed: {message}", index)


class SubmissionFailed(SparkSubError):
    """
    Raised or recorded when the submission executor reports failure.

    Attributes:
        returncode: Process exit code, or None when the process never started.
    """

    def __init__(self, index: JobIndex, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message, index)
