"""
Core engine for tracking items and orchestrating installs.

The `ItemRegistry` owns every known item and serves host requests, delegating
each actual transfer to the `DownloadOrchestrator`.
"""
