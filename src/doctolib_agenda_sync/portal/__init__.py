from .auth import AuthenticationError, AuthFlowShape, LoginCredentials, SessionAuthenticator
from .extraction import AppointmentExtractor, PacingPolicy

__all__ = [
    "AppointmentExtractor",
    "AuthFlowShape",
    "AuthenticationError",
    "LoginCredentials",
    "PacingPolicy",
    "SessionAuthenticator",
]
