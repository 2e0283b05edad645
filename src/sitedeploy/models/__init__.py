"""Data models for sitedeploy."""
