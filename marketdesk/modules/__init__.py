"""
MarketDesk Modules
==================

Flask blueprint modules for the marketing admin API.
"""

__all__ = ['access', 'campaigns', 'contacts', 'dashboard', 'email', 'email_templates', 'registrations']
