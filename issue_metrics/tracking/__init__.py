"""Event-to-duration aggregation engine.

This package turns an unordered label/state history into:
- in-progress intervals (extraction and merging)
- working time under a daily window, weekends and a per-day cap
- per-issue statistics and merge-request attention signals

Everything here is pure: "now" is passed in, nothing touches the network.
"""
