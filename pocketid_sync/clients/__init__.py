"""API clients for the external identity provider."""
