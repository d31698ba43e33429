"""
                        Tableside

Order lifecycle and realtime board backend for QR-code table ordering:
diners build a cart and check out against a table, staff follow orders
on a live board from pending to paid.
"""

__version__ = "1.0.0"
