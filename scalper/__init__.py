"""Kraken RSI/MACD scalping bot."""
