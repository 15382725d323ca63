"""
broadcasts — Broadcast submission and email delivery.

Sub-modules:
    models    — BroadcastRecord, OutboundMessage, DeliveryOutcome
    store     — opaque keys + SQL / in-memory stores
    composer  — map link, email body, headers
    mailer    — simulated and SMTP mail gateways
    service   — submit_broadcast / deliver_broadcast pipeline
"""
