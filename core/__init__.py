"""
Core Package

Contains the transport-agnostic foundation of the price feed client:
- config: Pydantic Settings loaded from the environment / .env
- logging: Centralized logger and log helpers
- schemas: Pydantic models for quotes, statistics, snapshots and benchmarks
- errors: Error kinds raised inside the client layer

Nothing in this package performs network I/O.
"""
