class SchedulerError(Exception):
    """
    Base class for errors raised by the scheduler to its callers.
    """


class ScheduleNotFoundError(SchedulerError):
    def __init__(self, schedule_id: str):
        super().__init__(f"Schedule not found: {schedule_id}")
        self.schedule_id = schedule_id


class NotAuthorizedError(SchedulerError):
    def __init__(self, schedule_id: str):
        super().__init__(f"Not authorized to modify schedule: {schedule_id}")
        self.schedule_id = schedule_id


class ScheduleValidationError(SchedulerError, ValueError):
    """
    Raised when a schedule definition is missing a required field.
    """
