"""
alerts — Severe weather alert processing and chat publishing.

Sub-modules:
    models      — enums, subscribers, formatted alerts, result records
    icons       — event → emoji → illustration lookup tables
    geo_fence   — polygon containment and vertex proximity
    targeting   — geofence + subscriber preference filtering
    formatter   — raw alert → title / body text
    dedup       — registry of already-handled alert ids
    rate_limit  — shared back-off state for 429 responses
    auth        — per-call bot re-authentication state machine
    bot         — bot handle protocol and platform implementation
    publisher   — image → text delivery to channel and direct messages
    store       — persistence contract + in-memory implementation
    processor   — dedup → severity gate → format → publish
    dispatcher  — detached processing tasks for the webhook
    mock_data   — synthetic alerts for testing
"""
