# ledger/apps.py
"""Ledger app configuration."""

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    """Configuration for the ledger app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "ledger"
    verbose_name = "Ledger & Balances"
