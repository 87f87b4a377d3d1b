"""
SLA Module
==========

Bounded context for service-level agreements on clinic service-desk tickets.

Responsibilities:
- Business calendar and business-minute arithmetic
- Response / resolution due dates from priority and category
- Ticket lifecycle: status transitions, SLA pause/resume, breach stamping
- First-response capture
- SLA status view for a ticket
"""

__version__ = "1.0.0"
