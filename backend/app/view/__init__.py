"""
view — Interaction state and the read model handed to the front end.

Sub-modules:
    selection — which alert the detail map shows
    toggles   — table / live-video panel visibility
    render    — table rows, marker requests, detail map, video panel
"""
