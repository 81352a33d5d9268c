"""
Error taxonomy for the outbound email layer.

  ConfigurationError  missing credential / grant, or an invalid config update
  AuthError           grant or key present but rejected by the provider
  TransportError      network or provider API failure
  PersistenceError    config file could not be written

Senders never let these escape send_one/send_batch; they are folded into
SendResult.error / SendResult.error_type instead.
"""


class EmailServiceError(Exception):
    """Base class for outbound email errors."""

    error_type = "error"


class ConfigurationError(EmailServiceError):
    error_type = "configuration"


class AuthError(EmailServiceError):
    error_type = "auth"


class TransportError(EmailServiceError):
    error_type = "transport"


class PersistenceError(EmailServiceError):
    error_type = "persistence"
