"""Microsoft identity sign-in demo: OAuth2, Azure AD B2C and Entra ID with PKCE."""

__version__ = "0.1.0"
