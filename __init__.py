"""
WhatsApp Lead Agent - Lead capture and keyword auto-replies over WhatsApp
=========================================================================

A web service for WhatsApp-based lead generation and automated
messaging:
1. Lead capture webhooks (e.g. WPForms submissions)
2. Keyword-matched auto-reply tactics with delayed replies
3. Outbound campaigns through the WhatsApp Business Cloud API

Version: 1.0.0
"""

__version__ = "1.0.0"
