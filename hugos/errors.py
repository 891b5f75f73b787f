"""
Exception types shared across the blueprints.

Routes translate these into JSON error responses; services raise them
before any state is written.
"""


class HugosError(Exception):
    """Base class for application errors"""


class ValidationError(HugosError):
    """A request is missing required fields or carries malformed values"""

    def __init__(self, message, fields=None):
        super().__init__(message)
        self.message = message
        self.fields = fields or []


class UpstreamError(HugosError):
    """An external service (AI generator, payment gateway) failed"""


class GenerationError(UpstreamError):
    """The AI generator could not produce an artifact"""


class MpesaError(UpstreamError):
    """The M-Pesa Daraja API was unreachable or rejected the request"""

    def __init__(self, message, response_code=None):
        super().__init__(message)
        self.response_code = response_code


class InvalidPhoneNumber(ValidationError):
    """Phone number cannot be normalized to the 2547XXXXXXXX format"""
