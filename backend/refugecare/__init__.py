"""
RefugeCare Triage - Backend Application Package

This package contains the emergency intake backend:
- API routes for facilities, tickets and triage sessions
- Triage engine (classification, facility matching, ticket lifecycle)
- Service wrappers for the advisory oracle and facility alerts
"""

__version__ = "0.1.0"
