"""Typer command line client for the device stream bridge service."""
