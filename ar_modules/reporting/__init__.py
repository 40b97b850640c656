"""
Reporting Module.

AR aging report, member statements and billing dashboard figures.
"""

from ar_modules.reporting.models import AgingReport, BillingStats, MemberStatement

__all__ = ["AgingReport", "BillingStats", "MemberStatement"]
