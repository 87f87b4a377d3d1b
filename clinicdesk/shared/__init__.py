"""
Shared Kernel Module
====================

Shared infrastructure used across bounded contexts (logging, HTTP middleware).

DO NOT add SLA business logic to the shared kernel.
"""
