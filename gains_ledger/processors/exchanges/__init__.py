"""Crypto exchange parsers: Coinbase, Kraken and the mapped generic crypto parser."""
