"""Commit author identity resolution for AppGit.

Profiles are keyed by user and, optionally, by application. Resolution is
an explicit two-level lookup: the per-application profile, then the user's
global profile (stored under the ``"default"`` key).

Execution Context:
    Library module - imported by the commit engine and repository binding

Dependencies:
    - appgit_core.store: Profile persistence

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging

from appgit_core.errors import InvalidProfile
from appgit_core.errors import ProfileNotConfigured
from appgit_core.models import DEFAULT_PROFILE_KEY
from appgit_core.models import GitProfile
from appgit_core.store import DocumentStore

logger = logging.getLogger(__name__)


# ---- Identity Store -----------------------------------------------------------------------------------------


class IdentityStore:
    """Reads and writes git profiles through the document store.

    Attributes:
        store: Document store holding the profiles.
    """

    def __init__(
            self,
            store: DocumentStore,
    ) -> None:
        self.store = store

    def get_profiles(
            self,
            user_id: str,
    ) -> dict[str, GitProfile]:
        """Get every stored profile of a user.

        Args:
            user_id: User identifier.

        Returns:
            Mapping of application id (or "default") to profile.
        """
        return self.store.get_profiles(user_id)

    def resolve_profile(
            self,
            user_id: str,
            application_id: str | None = None,
            required: bool = True,
    ) -> GitProfile | None:
        """Resolve the author identity for a user.

        Args:
            user_id: User identifier.
            application_id: Default application id for a per-app profile.
            required: Raise instead of returning None when nothing resolves.

        Returns:
            Resolved GitProfile, or None when absent and not required.

        Raises:
            ProfileNotConfigured: If no usable profile exists and required.
        """
        profiles = self.store.get_profiles(user_id)

        if application_id and application_id != DEFAULT_PROFILE_KEY:
            app_profile = profiles.get(application_id)
            if app_profile and not app_profile.use_global_profile and app_profile.is_complete:
                return app_profile

        global_profile = profiles.get(DEFAULT_PROFILE_KEY)
        if global_profile and global_profile.is_complete:
            return global_profile

        if required:
            scope = f"application '{application_id}'" if application_id else "global scope"
            msg = f"No git profile configured for user '{user_id}' ({scope})"
            raise ProfileNotConfigured(msg)

        return None

    def upsert_profile(
            self,
            user_id: str,
            profile: GitProfile,
            is_default: bool = False,
            application_id: str | None = None,
    ) -> dict[str, GitProfile]:
        """Create or update a profile.

        Args:
            user_id: User identifier.
            profile: Profile to store.
            is_default: Also store the profile as the user's global fallback.
            application_id: Application the profile applies to.

        Returns:
            The user's full profile map after the update.

        Raises:
            InvalidProfile: If name or email is missing while the profile
                does not defer to the global one, or if ``application_id``
                is the key reserved for the global profile.
        """
        if application_id == DEFAULT_PROFILE_KEY:
            msg = f"Application id '{DEFAULT_PROFILE_KEY}' is reserved for the global git profile"
            raise InvalidProfile(msg)

        if not profile.use_global_profile or is_default or not application_id:
            if not profile.is_complete:
                msg = "Git profile requires both author name and author email"
                raise InvalidProfile(msg)
            if "@" not in profile.author_email:
                msg = f"Invalid author email: {profile.author_email!r}"
                raise InvalidProfile(msg)

        stored = GitProfile(
            author_name=profile.author_name.strip(),
            author_email=profile.author_email.strip(),
            use_global_profile=profile.use_global_profile,
        )

        if application_id:
            self.store.save_profile(user_id, application_id, stored)

        if is_default or not application_id:
            global_profile = GitProfile(
                author_name=stored.author_name,
                author_email=stored.author_email,
                use_global_profile=False,
            )
            self.store.save_profile(user_id, DEFAULT_PROFILE_KEY, global_profile)

        logger.debug("Updated git profile for user %s (application=%s, default=%s)",
                     user_id, application_id, is_default)
        return self.store.get_profiles(user_id)
