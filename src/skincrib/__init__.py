"""Skincrib merchant client - real-time P2P market socket SDK"""

from .client import MerchantClient
from .config import MerchantConfig, setup_logging
from .errors import (
    AuthenticationError,
    ConfigurationError,
    NotAuthenticatedError,
    RemoteOperationError,
    RequestTimeoutError,
    SkincribError,
    TransportError,
    ValidationError,
)
from .events import NotificationType
from .models import ClientListings, ConnectionStatus, Listing, ListingItem, ListingUpdate, MarketStats

__version__ = "0.1.0"

__all__ = [
    'MerchantClient',
    'MerchantConfig',
    'setup_logging',
    'NotificationType',
    'Listing',
    'ListingItem',
    'ListingUpdate',
    'ClientListings',
    'MarketStats',
    'ConnectionStatus',
    'SkincribError',
    'ConfigurationError',
    'ValidationError',
    'NotAuthenticatedError',
    'AuthenticationError',
    'RemoteOperationError',
    'RequestTimeoutError',
    'TransportError',
]
