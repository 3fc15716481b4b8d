"""Outbound HTTP bridges.

- **providers**: OpenAI-compatible chat / image / connection-test proxy
- **engine**: reverse proxy and instance reload for the local engine
"""
