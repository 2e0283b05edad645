"""Configuration loading for the sitedeploy worker."""
