from fairsplit.handlers.basic import basic_router
from fairsplit.handlers.expenses import expenses_router
from fairsplit.handlers.payments import payments_router
from fairsplit.handlers.requests import requests_router

__all__ = ["basic_router", "expenses_router", "payments_router", "requests_router"]
