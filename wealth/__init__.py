"""
Wealth - Source Package

A personal finance tracker: accounts, income/expense transactions,
receipt scanning, monthly AI insights and scheduled budget alerts.

DESIGN PRINCIPLES:
1. Every action authenticates before it touches data
2. Balance changes and the rows that cause them commit together
3. AI output is a suggestion, never a source of truth
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Wealth Team"
