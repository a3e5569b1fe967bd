"""
UI Module - User-facing interfaces of the WhatsApp Lead Agent
"""
