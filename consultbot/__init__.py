"""Telegram booking bot for psychology consultations"""

__version__ = "1.0.0"
