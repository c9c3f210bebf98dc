"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers and orchestrate database operations.

- pairs: canonical participant ordering
- conversations / messages: the two stores (never commit)
- messaging: the orchestrator, one function per route
- tx: transaction runner with retry and deadlines
- presence / profiles: injected collaborators
"""
