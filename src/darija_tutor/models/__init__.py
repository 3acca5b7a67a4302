"""
Models module for the inference gateway.

Provides the tutor client used for analysis and speech synthesis.
"""

from darija_tutor.models.tutor_client import (
    GatewayError,
    GatewayResponseError,
    GeminiTutorClient,
    MissingCredentialError,
    TutorClientBase,
    parse_tutor_response,
)

__all__ = [
    "GatewayError",
    "GatewayResponseError",
    "GeminiTutorClient",
    "MissingCredentialError",
    "TutorClientBase",
    "parse_tutor_response",
]
