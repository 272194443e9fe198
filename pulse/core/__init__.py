"""
Pulse - Core Module

Server side of the tracing pipeline:
- Validate and ingest trace batches sent by the SDK
- Store traces and sessions per project
- Aggregate cost, latency, token and error analytics
"""
