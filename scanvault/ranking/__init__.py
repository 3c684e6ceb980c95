"""
Leaderboards.

Modules
-------
derived          Default derived-stats function and server key normalisation.
index_builder    Daily ranked index documents per scope.
server_snapshot  Per-server top-N derived snapshots.
"""
