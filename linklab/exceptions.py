"""
Domain errors raised by the service layer.

Routers translate these into HTTP responses; the redirect path never lets
them reach the client.
"""


class LinkLabError(Exception):
    """Base class for all service-level errors"""


class InvalidAliasError(LinkLabError):
    """Custom alias is empty, too long or uses characters outside [A-Za-z0-9-]"""


class AliasConflictError(LinkLabError):
    """Requested short code is already taken"""

    def __init__(self, alias: str):
        super().__init__(f"Custom alias '{alias}' is already taken")
        self.alias = alias


class ShortCodeExhaustedError(LinkLabError):
    """Random generation collided on every attempt"""

    def __init__(self, attempts: int):
        super().__init__(
            f"Could not allocate a unique short code after {attempts} attempts"
        )
        self.attempts = attempts
