"""
auth/oauth.py -- Authlib OAuth provider configuration and profile extraction.

build_oauth() creates the Authlib registry from Settings at startup. Google is
registered only when both client id and secret are configured; otherwise
GET /auth/google answers 404.

OAuth state parameter (CSRF protection for the authorization code flow) is
handled by authlib via Starlette SessionMiddleware: the state is stored in the
signed session cookie before the redirect and checked in the callback.

Security notes:
  [H1] An email the provider explicitly marks as unverified is rejected. An
       unverified address could belong to someone else, and the resolver links
       accounts by email.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import AuthProvider, OAuthUserData

logger = logging.getLogger("chefflow.auth.oauth")

GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


def build_oauth(settings) -> OAuth:
    """Return an Authlib registry with every configured provider registered."""
    oauth = OAuth()
    if settings.google_enabled:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=GOOGLE_METADATA_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    return oauth


def profile_from_userinfo(userinfo: dict | None, provider: AuthProvider = AuthProvider.GOOGLE) -> OAuthUserData:
    """Normalize OIDC userinfo claims into OAuthUserData.

    Raises ValueError when the claims cannot identify a user: no userinfo,
    no email, an email explicitly marked unverified [H1], or no subject.

    Name is "given_name family_name" when both are present, else the "name"
    claim. Image is the "picture" claim.
    """
    if not userinfo:
        raise ValueError(f"{provider.value} OAuth: no userinfo in token response")

    email = userinfo.get("email")
    if not email:
        raise ValueError("No email provided by Google")
    if userinfo.get("email_verified") is False:
        raise ValueError("Email not verified by Google")

    subject = userinfo.get("sub")
    if not subject:
        raise ValueError(f"{provider.value} OAuth: missing sub claim in userinfo")

    given, family = userinfo.get("given_name"), userinfo.get("family_name")
    name = f"{given} {family}" if given and family else userinfo.get("name")

    return OAuthUserData(
        provider=provider,
        provider_id=str(subject),
        email=email,
        name=name,
        image=userinfo.get("picture"),
    )
