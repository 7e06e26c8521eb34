# API v1 Package
from assetledger.api.v1 import fixed_assets, financial_periods

__all__ = [
    'fixed_assets',
    'financial_periods',
]
