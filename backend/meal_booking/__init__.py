"""
Meal booking: multi-tenant meal registration, serving and auto-registration.
"""
