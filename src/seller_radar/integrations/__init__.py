"""Outbound integrations (CRM webhook)."""
