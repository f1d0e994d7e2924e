"""
alerts — Alert feed aggregation.

Sub-modules:
    models        — Alert, SourceKind, LoadState, SourceStatus
    source_client — one-shot HTTP reader per feed
    normalizer    — native record shape → Alert
    controller    — owns both feeds, bounds, selection and toggles
"""
