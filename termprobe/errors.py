"""Exception hierarchy for termprobe."""

from termprobe.cancellation import OrchestrationCancelled


class TermprobeError(Exception):
    """Base class for termprobe errors."""


class PlannerError(TermprobeError):
    """The planner backend failed to produce a response."""


class InitialPlanError(TermprobeError):
    """No usable initial plan could be parsed. The only fatal orchestration error."""


__all__ = ["TermprobeError", "PlannerError", "InitialPlanError", "OrchestrationCancelled"]
