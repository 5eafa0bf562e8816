"""Active Directory offboarding and profile photo toolkit."""

__version__ = "1.0.0"
