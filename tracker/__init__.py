"""
E-Waste Tracker — Reconciliation Package.

Components:
    - service: DeviceTracker, merges ledger records with local data
    - record_store: JSON-backed metadata, impact and timeline store
    - aggregation: dashboard statistics over the fleet
    - models: local read/write models and result types
    - errors: error taxonomy shared by every layer
    - settings: environment / .env configuration
"""
