"""Exceptions raised by the queue engine."""


class QueueError(Exception):
    """Base class for every error the queue engine reports."""


class ValidationError(QueueError):
    """Input rejected before anything was written."""


class NotFoundError(QueueError):
    def __init__(self, patient_id: int) -> None:
        self.patient_id = patient_id
        super().__init__(f"Patient with ID {patient_id} not found")


class StoreError(QueueError):
    """The patient store failed.  The original exception is chained."""
