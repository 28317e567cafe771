"""
LifeSync - Command Execution Core

The engine behind the LifeSync personal dashboard. The Telegram bot and the
web chat widget both drive the same records (accounts, transactions,
reminders, habits, passwords, watch-later) through this package.

DESIGN PRINCIPLES:
1. Missing parameters are collected turn by turn, never guessed
2. Irreversible mutations are proposed first and executed only on "yes"
3. Local state is updated immediately and rolled back exactly on failure
4. Clarification never has side effects
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "LifeSync Team"
