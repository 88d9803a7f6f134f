"""
Utilities Package for Depwatch

Logging setup and outbound URL safety checks.
"""
