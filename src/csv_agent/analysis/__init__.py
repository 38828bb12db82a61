"""Tabular analysis over uploaded CSV files."""
