"""
Per-entity aggregation.

Modules
-------
latest   Grouping by entity and the monotonic latest-document guard.
history  Weekly/monthly buckets and the per-field aggregation policy.
"""
