"""
CareWatch health monitoring pipeline.

Turns vital-sign readings for monitored individuals into alerts and delivers
them to care-circle members and emergency contacts over push, SMS and email.

This package provides:
- Data models for readings, alerts and notification attempts
- Anomaly detection and the alert lifecycle (acknowledgment, escalation)
- Preference filtering and multi-channel delivery with retries
- Configuration management
- Storage clients for Redis and PostgreSQL
"""

__version__ = "0.1.0"
