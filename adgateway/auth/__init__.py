"""
Facebook Ads Gateway - Sessions and credential resolution.
"""

from adgateway.auth.credentials import CredentialCache, CredentialResolver
from adgateway.auth.prompts import PromptBroker
from adgateway.auth.service import CredentialServiceClient, CredentialServiceError
from adgateway.auth.sessions import SessionRegistry

__all__ = [
    'CredentialCache',
    'CredentialResolver',
    'PromptBroker',
    'CredentialServiceClient',
    'CredentialServiceError',
    'SessionRegistry',
]
