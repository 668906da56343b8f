"""Equity broker gain/loss parsers: Schwab, Fidelity, TD Ameritrade and the mapped generic parser."""
