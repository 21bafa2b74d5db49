"""
Expense Tracker - Source Package

A personal expense tracker: manual entry, receipt scanning with
Gemini, and spending reports.

DESIGN PRINCIPLES:
1. AI proposes → Human confirms → System validates
2. Every operation is scoped to the signed-in user
3. No silent corrections on manual entry
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
