"""Task manager — retry timers and recovery cron jobs.

Provides ``Scheduler`` for one-shot keyed timers (handshake and delivery
retries) and ``TaskManager`` for periodic recovery jobs:
- replay of events whose fan-out never completed
- expiry of stale subscriptions
- metrics calculation (subscription gauge)

For distributed deployments, Redis ``SET NX`` provides distributed locking so
only one instance runs a given cron job at a time.
"""

from __future__ import annotations

from hookrelay.taskmanager.manager import CronJob, TaskManager
from hookrelay.taskmanager.scheduler import Scheduler

__all__ = ["CronJob", "Scheduler", "TaskManager"]
