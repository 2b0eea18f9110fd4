"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps (catalog, escrow).
Nothing in here knows about payments or items.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, PermissionDeniedError,
      ConflictError, ExternalServiceError

API (core.exception_handler):
    - application_exception_handler: renders application errors in DRF views
"""
