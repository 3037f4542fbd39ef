from __future__ import annotations


class ServiceError(Exception):
    status_code = 500
    code = "internal_error"
    title: str | None = None

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class UnsupportedFileType(ValidationError):
    code = "unsupported_file_type"


class AuthError(ServiceError):
    status_code = 401
    code = "auth_error"


class MissingApiKey(AuthError):
    code = "api_key_required"

    def __init__(self, message: str = "API key required", **kwargs):
        super().__init__(message, **kwargs)


class InvalidKey(AuthError):
    code = "invalid_api_key"

    def __init__(self, message: str = "Invalid API key", **kwargs):
        super().__init__(message, **kwargs)


class InactiveKey(AuthError):
    code = "inactive_api_key"

    def __init__(self, message: str = "API key is inactive", **kwargs):
        super().__init__(message, **kwargs)


class AdminAuthError(AuthError):
    code = "admin_auth_error"


class QuotaExceeded(AuthError):
    status_code = 429
    code = "quota_exceeded"


class DailyLimitExceeded(QuotaExceeded):
    code = "daily_limit_exceeded"

    def __init__(self, message: str = "Daily request limit exceeded", **kwargs):
        super().__init__(message, **kwargs)


class MonthlyLimitExceeded(QuotaExceeded):
    code = "monthly_limit_exceeded"

    def __init__(self, message: str = "Monthly request limit exceeded", **kwargs):
        super().__init__(message, **kwargs)


class AnalysisError(ServiceError):
    status_code = 500
    code = "analysis_error"
    title = "Failed to analyze resume"


class AnalysisFailed(AnalysisError):
    code = "analysis_failed"


class MaintenanceModeEnabled(ServiceError):
    status_code = 503
    code = "maintenance_mode"

    def __init__(self, message: str = "Service is temporarily down for maintenance", **kwargs):
        super().__init__(message, **kwargs)


class KeyNotFound(ServiceError):
    status_code = 404
    code = "api_key_not_found"

    def __init__(self, message: str = "API key not found", **kwargs):
        super().__init__(message, **kwargs)


class KeyMismatch(AuthError):
    status_code = 403
    code = "api_key_mismatch"

    def __init__(self, message: str = "API key does not match the requested key", **kwargs):
        super().__init__(message, **kwargs)


class FeatureNotAvailable(AuthError):
    status_code = 403
    code = "feature_not_available"
