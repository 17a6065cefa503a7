"""
Client side of event registration.

The registration controller keeps per-event card state for one viewer,
applies registrations optimistically and rolls them back when the server
refuses or can't be reached.
"""
from alumni.client.context import ViewerContext
from alumni.client.api_client import EventsApiClient, ApiRejected, TransportError
from alumni.client.registration_controller import (
    RegistrationController,
    EventCardState,
    RegistrationAttempt,
    RegistrationOutcome,
)

__all__ = [
    'ViewerContext',
    'EventsApiClient',
    'ApiRejected',
    'TransportError',
    'RegistrationController',
    'EventCardState',
    'RegistrationAttempt',
    'RegistrationOutcome',
]
