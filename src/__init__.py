"""
Fingrow Assistant - Source Package

The conversational core of a personal finance app: answers free-text
questions about spending, budget, portfolio and net worth, and turns
narrated purchases into transactions awaiting confirmation.

DESIGN PRINCIPLES:
1. Route locally first, call the model only when it adds value
2. Only aggregated summaries ever leave the device
3. The model never writes data; the user confirms every transaction
4. Cost guardrails are hard failures, runtime errors are soft
5. Every turn is auditable
"""

__version__ = "1.0.0"
__author__ = "Fingrow Team"
