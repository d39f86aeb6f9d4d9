"""
Standard type definitions for database models.

Provides consistent types for monetary and percentage fields across all models.
"""

from sqlalchemy import DECIMAL, JSON
from sqlalchemy.dialects.postgresql import JSONB

# Standard money type for amounts, balances, commissions
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Commission rate percentage type
# Precision: 7 digits total, 4 after decimal point
# Suitable for: level rates (e.g., 10.0000%, 5.5000%)
# Range: 0.0000 to 999.9999
RatePercentType = DECIMAL(7, 4)

# JSON payload; JSONB on PostgreSQL
JSONType = JSON().with_variant(JSONB(), "postgresql")
