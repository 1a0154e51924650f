"""Wallet portfolio data core: caching, provider fallback and approval scanning."""
