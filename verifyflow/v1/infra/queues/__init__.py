"""
Queue infrastructure for the verification workflows.

This package provides the job orchestration core:
- Named queues with per-domain retry and retention defaults
- SQL-backed claiming with priorities, delays and heartbeats
- A worker engine with per-handler concurrency bounds and follow-up chaining
- Recurring re-screening jobs keyed by subject and screening type
- Statistics, cleanup, pause/resume and health aggregation
"""
