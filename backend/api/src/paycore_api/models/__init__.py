"""API-specific request/response models.

Domain models (PendingOrder, WebhookEvent, ledger entries) live in
paycore.models and are reused here where appropriate.

Modules:
- common: Health and generic error bodies
- services: Catalog listing responses
- admin: Compensation and monitoring request/response models
"""

__all__: list[str] = []
