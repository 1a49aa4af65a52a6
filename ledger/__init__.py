"""
E-Waste Tracker — Ledger Package.

Components:
    - adapter: web3 wrapper around the EWasteTracker contract
    - events: DeviceRegistered receipt log parsing
    - models: on-chain enums and records
"""
