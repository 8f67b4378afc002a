"""DealPass redemption and entitlement service."""
