"""
Sandbox purge - notify and reset ageing sandbox spaces on a Cloud Foundry platform.

This package provides a CLI that warns space users before their sandbox
space expires, then deletes and recreates expired spaces with the same
developers and managers.
"""

__version__ = "0.1.0"
