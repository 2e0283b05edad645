"""Shared library code for sitedeploy."""
