from src.scheduling.assignment import AssignmentEngine
from src.scheduling.availability import AvailabilityResolver
from src.scheduling.locks import MechanicDateLocks
from src.scheduling.scheduler import GarageScheduler
from src.scheduling.transitions import StatusTransitionManager

__all__ = [
    "GarageScheduler",
    "AvailabilityResolver",
    "AssignmentEngine",
    "StatusTransitionManager",
    "MechanicDateLocks",
]
