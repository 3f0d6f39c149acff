"""Scheduler package for periodic budget replenishment."""

from budgetgate.scheduler.service import ReplenishmentScheduler, SchedulerState

__all__ = ["ReplenishmentScheduler", "SchedulerState"]
