"""Calendar availability: OAuth, token lifecycle, provider clients and aggregation."""

from .authenticator import PKCEAuthenticator
from .client import CalendarClient
from .manager import CalendarManager
from .providers import GOOGLE, OUTLOOK, PROVIDERS, ProviderDescriptor
from .tokens import TokenManager

__all__ = [
    "PKCEAuthenticator",
    "CalendarClient",
    "CalendarManager",
    "TokenManager",
    "ProviderDescriptor",
    "GOOGLE",
    "OUTLOOK",
    "PROVIDERS",
]
