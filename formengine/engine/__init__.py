from formengine.engine.authoring import FormAuthoringSession
from formengine.engine.hydrator import effective_options, hydrate_options
from formengine.engine.requests import RequestTracker
from formengine.engine.runtime import FormRuntime, RuntimeState, SubmissionOutcome
from formengine.engine.schedule import ScheduleContext, ScheduleEngine, SlotLoadState
from formengine.engine.summary import BookingSummary, build_booking_summary
from formengine.engine.visibility import is_visible

__all__ = [
    "FormRuntime", "RuntimeState", "SubmissionOutcome",
    "ScheduleEngine", "ScheduleContext", "SlotLoadState",
    "FormAuthoringSession",
    "hydrate_options", "effective_options", "is_visible",
    "RequestTracker", "BookingSummary", "build_booking_summary",
]
