"""
SecureDesk - Personal Secrets Vault Core
========================================

Stores website credentials, bank cards, bank account details and identity
documents per user, with sensitive fields encrypted at rest.

Security Notice:
- No secrets are logged
- Sensitive fields are encrypted before they reach storage
- Every record access is scoped to its owner
"""

from securedesk.core.config import SecureDeskConfig
from securedesk.core.logging import get_secure_logger
from securedesk.vault import Vault

__version__ = "0.1.0"

__all__ = ["SecureDeskConfig", "Vault", "get_secure_logger", "__version__"]
