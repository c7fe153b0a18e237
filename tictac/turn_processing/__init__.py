"""Move validation.

Every inbound move flows through the same validator pipeline so rejection
reasons show up consistently in server logs.
"""
