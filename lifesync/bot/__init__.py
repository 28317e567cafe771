"""Telegram front-end (aiogram)."""
