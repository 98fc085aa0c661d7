"""
Device code sign-in for Microsoft Graph, backed by an on-disk MSAL token cache.
"""

import logging
from pathlib import Path

import msal
from rich.console import Console

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class GraphAuthenticator:
    """
    Obtains delegated Graph tokens for reading Outlook free/busy data.

    Device Code Flow suits a terminal: the user opens a URL, types a code and
    grants access; the token is cached on disk for later runs.
    """

    SCOPES = ["Calendars.Read.Shared", "Calendars.Read"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        authority_url: str | None = None,
        cache_file: Path | None = None,
        console: Console | None = None,
    ):
        """
        Set up the MSAL public client.

        Args:
            client_id: Azure AD application (client) ID
            tenant_id: Azure AD tenant ID
            authority_url: Optional custom authority URL
            cache_file: Optional path to token cache file
            console: Console used to show device-code instructions
        """
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self.console = console or Console(stderr=True)

        self.cache_file = cache_file or Path.home() / ".hangoutfinder_token_cache.json"
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )

    def _load_cache(self) -> msal.SerializableTokenCache:
        """Token cache from ``cache_file``; empty if missing or unreadable."""
        cache = msal.SerializableTokenCache()

        if self.cache_file.exists():
            try:
                cache.deserialize(self.cache_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Could not load token cache %s: %s", self.cache_file, e)

        return cache

    def _save_cache(self) -> None:
        """Save token cache to disk, readable by the owner only."""
        if not self.cache.has_state_changed:
            return

        try:
            self.cache_file.write_text(self.cache.serialize(), encoding="utf-8")
            self.cache_file.chmod(0o600)
        except OSError as e:
            logger.warning("Could not save token cache %s: %s", self.cache_file, e)

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, using the cache or a new device flow.

        Raises:
            AuthenticationError: If authentication fails
        """
        if not force_refresh:
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(
                    scopes=self.SCOPES,
                    account=accounts[0]
                )
                if result and "access_token" in result:
                    self._save_cache()
                    return result["access_token"]
                logger.debug("Silent token acquisition failed, falling back to device flow")

        return self._authenticate_device_code_flow()

    def _authenticate_device_code_flow(self) -> str:
        flow = self.app.initiate_device_flow(scopes=self.SCOPES)

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        self.console.print("\n[bold cyan]Microsoft sign-in required[/bold cyan]")
        self.console.print(f"1. Open [bold cyan]{flow['verification_uri']}[/bold cyan]")
        self.console.print(f"2. Enter the code [bold yellow]{flow['user_code']}[/bold yellow]")
        self.console.print("3. Sign in and grant calendar read access\n")
        self.console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Authentication failed: {error}")

        logger.info("Microsoft authentication successful")
        self._save_cache()

        return result["access_token"]

    def clear_cache(self) -> None:
        """Forget cached tokens; the next call signs in again."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        self.cache = msal.SerializableTokenCache()
        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )
