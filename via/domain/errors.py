# via/domain/errors.py

class ViaError(Exception):
    """Base class for errors raised by the offers service."""


class RegistryError(ViaError):
    """Seller registry file is missing or cannot be parsed."""


class TokenError(ViaError):
    """Session token is malformed or its signature does not verify."""


class ClarifyError(ViaError):
    """Intent clarification could not be produced by the LLM."""
