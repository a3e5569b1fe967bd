"""
Web Module - FastAPI-based HTTP API
===================================

This module provides the HTTP interface of the WhatsApp Lead Agent,
including:
- Lead capture and inbound message webhooks
- Campaign creation and runs
- Chatbot tactic editing, toggling and testing
- Admin account management
"""

from .app import create_app, run_app
from .routes import router

__all__ = [
    "create_app",
    "run_app",
    "router",
]
