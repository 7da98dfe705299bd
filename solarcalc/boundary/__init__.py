"""Adapters to the OS: PowerShell, Office processes, files and the database."""
