"""Business-logic layer: entity stores over the generic document repository, plus auth flows.

- provider_store.py / vm_store.py / payout_store.py (per-entity rules on top of DocumentRepository)
- metric_history.py (bounded cpu/gpu/ram sample windows)
- identity.py + auth_service.py (credential verification, register/login)
"""

# Import side-effects are intentionally avoided here; modules are imported by routers/state as needed.
