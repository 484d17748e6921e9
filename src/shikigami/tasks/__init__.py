"""
Fuda subsystem.

Components:
- task_models.py: data structures (Fuda, TaskStatus, DependencyType, ...)
- ids.py: short collision-resistant id generator
- task_store.py: SQLite-backed fuda storage, status writes, soft/hard delete
- dependency_store.py: dependency edges + edge validation policy
- readiness.py: BLOCKED -> READY propagation
- claim.py: conditional hand-off of a fuda to a spirit
- prefix.py: short prefix -> fuda id
- tree.py: bounded, cycle-safe dependency tree
- search.py: full-text lookup over the derived FTS index
- task_api.py: high-level helpers used by callers
"""
