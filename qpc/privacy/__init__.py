from .transforms import FACTOR_DOMAIN_TAG, PrivacyTransforms

__all__ = ["PrivacyTransforms", "FACTOR_DOMAIN_TAG"]
