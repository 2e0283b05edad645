"""Command-line interface for sitedeploy."""
