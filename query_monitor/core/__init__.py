"""
Dashboard computation core.

Modules:
- units: duration/data-size parsing and display formatting
- rate_history: bounded sliding window of rate samples
- poller: timer-driven snapshot poller and rate derivation
- stage_tree: stage tree flattening and the stage arena
- tasks: task filtering, natural task-id ordering, display mode
- histogram: equal-width skew histograms
- failure_format: failure chain stack-trace formatting
- dashboard: derivation of the complete dashboard view
- registry: per-query poller lifecycle
"""
