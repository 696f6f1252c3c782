from .cycle_scheduler import CycleScheduler, JobStatus, ScheduledJob

__all__ = ["CycleScheduler", "JobStatus", "ScheduledJob"]
