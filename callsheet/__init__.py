"""
Contact extraction for production documents.

Turns the raw text of call sheets, crew lists and talent sheets into
validated, deduplicated and confidence-scored contact records.
"""

__version__ = "0.1.0"
