"""Authority resolution and delegation quotas."""

from .quota import QuotaEnforcer, QuotaVerdict
from .resolver import AuthorityGrant, AuthorityResolver, Tier

__all__ = ["AuthorityGrant", "AuthorityResolver", "QuotaEnforcer", "QuotaVerdict", "Tier"]
