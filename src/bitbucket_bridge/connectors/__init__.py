"""Upstream API connectors for the Bitbucket bridge."""
