"""Billing engine services: pure calculators and transactional operations.

Database access lives in ``condobill.services.db``; importing this package
does not create an engine.
"""
