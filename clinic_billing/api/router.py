# FILE: clinic_billing/api/router.py
from fastapi import APIRouter

from clinic_billing.api import (
    routes_invoices,
    routes_payment_plans,
    routes_payments,
    routes_receivables,
)

api_router = APIRouter()

# Billing
api_router.include_router(routes_invoices.router,
                          prefix="/billing/invoices",
                          tags=["Billing: Invoices"])
api_router.include_router(routes_payments.router,
                          prefix="/billing/payments",
                          tags=["Billing: Payments"])
api_router.include_router(routes_receivables.router,
                          prefix="/billing/accounts-receivable",
                          tags=["Billing: Accounts Receivable"])

# Payment plans
api_router.include_router(routes_payment_plans.router,
                          prefix="/payment-plans",
                          tags=["Payment Plans"])
