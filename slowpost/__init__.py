"""
Slowpost

Delayed letter service
- Letters stay locked until their reveal time passes
- Local JSON file or relational table + object store persistence
- Password-gated edits while a letter is still pending
"""

__version__ = "1.2.0"
