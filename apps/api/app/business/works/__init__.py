from app.business.works.models import PeriodDocument, PeriodTask, RecurringPeriod, Work, WorkDocument, WorkTask

__all__ = [
    "Work",
    "WorkTask",
    "WorkDocument",
    "RecurringPeriod",
    "PeriodTask",
    "PeriodDocument",
]
