"""
clinicdesk
==========

Service-desk ticket tracker for a network of clinics: SLA business-time
engine and ticket lifecycle.
"""

__version__ = "1.0.0"
