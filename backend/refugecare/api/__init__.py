"""
RefugeCare Triage - API Package

REST routers: facilities and tickets (routes), conversational triage
sessions (triage), and system probes (health).
"""
