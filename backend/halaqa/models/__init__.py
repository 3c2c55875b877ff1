from halaqa.models.student import (
    Evaluation, PaymentType, Weekday, ScheduleEntry, StudentFields,
    RoutinePayload, StudentLogin, AdminLogin, public_view, outstanding_view,
)

__all__ = [
    "Evaluation", "PaymentType", "Weekday", "ScheduleEntry", "StudentFields",
    "RoutinePayload", "StudentLogin", "AdminLogin", "public_view", "outstanding_view",
]
