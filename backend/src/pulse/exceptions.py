"""Domain exceptions raised by Pulse services."""


class PulseError(Exception):
    """Base class for domain errors."""


class MalformedEventError(PulseError):
    """A webhook event is missing, or carries an invalid, sub-object its handler needs."""


class ProfileNotFoundError(PulseError):
    """No profile matches a provider customer id."""

    def __init__(self, customer_id: str):
        super().__init__(f"Não foi possível encontrar o perfil do usuário para o cliente {customer_id}")
        self.customer_id = customer_id


class MessagingAPIError(PulseError):
    """The WhatsApp BSP answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InstanceNotFoundError(PulseError):
    """No WhatsApp instance token is known for a profile."""
