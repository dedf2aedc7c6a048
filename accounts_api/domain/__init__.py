"""Domain-level policies and business rules.

This package contains logic that defines *what* the business rules are
(who may act on whom, which state an account is in), independent from
*where* they are applied (services, repositories, routers).
"""
