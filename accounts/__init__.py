# accounts/__init__.py
"""
Accounts app - Users and tenants.

This app provides:
- User: Custom user model (email login)
- Company: The tenant every ledger row belongs to
- ActorContext: Who is acting, and in which company
"""
