"""
shikigami: lifecycle and dependency engine for fuda (units of work).

Entry point for callers is bootstrap.create_initial_state() plus the
helpers in tasks.task_api.
"""

__version__ = "0.4.0"
