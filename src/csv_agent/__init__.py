# src/csv_agent/__init__.py
"""CSV Agent - chat sessions over uploaded CSV files backed by a tool-using LLM agent."""

__version__ = "0.1.0"
__author__ = "Njoro Kuria"
__email__ = "njoro.kuria@gmail.com"
