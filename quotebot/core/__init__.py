"""Core runtime: configuration, exchange contracts, market data and the trading engine."""
