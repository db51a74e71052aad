"""Tenant operator: keeps admin portal tenant accounts in line with Tenant resources.

This package exposes the resource models, the admin portal client, local
resource stores, the per-tenant reconciler and the orchestrating manager.
"""
