import os
import logging
from typing import Optional

from google.cloud.firestore_v1 import AsyncClient

logger = logging.getLogger(__name__)


class FirestoreDB:
    """
    Owns the :class:`google.cloud.firestore_v1.AsyncClient` every TokFlo
    document is read from and written to.

    The same object can point at:

    * **A local Firestore emulator**, for development and CI.
    * **The real Firestore backend**, the default when no emulator host is set.
    * **A mocked client**, for unit tests that must not touch the network.
    """

    def __init__(
        self,
        project_id: str,
        database: Optional[str] = None,
        credentials=None,
        emulator_host: Optional[str] = None,
    ):
        """
        Parameters
        ----------
        project_id :
            Google Cloud project backing the Firebase app.
        database :
            Optional Firestore database ID (defaults to ``(default)``).
        credentials :
            Explicit credentials; ``None`` uses the SDK default chain.
        emulator_host :
            ``host:port`` of a running Firestore emulator.
        """
        self.project_id = project_id
        self.database = database
        self.credentials = credentials
        self._emulator_host = emulator_host

        self.client: AsyncClient = self._init_client()

    @classmethod
    def from_settings(cls, settings) -> "FirestoreDB":
        """Build the connection described by a :class:`tokflo.config.Settings`."""
        credentials = None
        if settings.credentials_path and not settings.emulator_host:
            from google.oauth2.service_account import Credentials

            credentials = Credentials.from_service_account_file(settings.credentials_path)
        return cls(
            project_id=settings.project_id,
            database=settings.database,
            credentials=credentials,
            emulator_host=settings.emulator_host,
        )

    # --------------------------------------------------------------------- #
    # Internal helpers                                                      #
    # --------------------------------------------------------------------- #

    def _init_client(self) -> AsyncClient:
        """
        Instantiate an :class:`AsyncClient`.

        The Google client libraries read ``FIRESTORE_EMULATOR_HOST`` to decide
        where to send traffic, so the variable is exported or cleared here.
        """
        if self._emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = self._emulator_host
            logger.info(f"Using Firestore emulator on {self._emulator_host}")
        else:
            os.environ.pop("FIRESTORE_EMULATOR_HOST", None)
        return AsyncClient(
            project=self.project_id,
            database=self.database,
            credentials=self.credentials,
        )

    # --------------------------------------------------------------------- #
    # Public utility methods                                                #
    # --------------------------------------------------------------------- #

    def use_emulator(self, host: str = "localhost:8080"):
        """Switch to a local emulator and recreate the client."""
        self._emulator_host = host
        self.client = self._init_client()
        logger.info(f"Emulator enabled on {host}")

    def clear_emulator(self):
        """Go back to the production Firestore endpoint."""
        self._emulator_host = None
        self.client = self._init_client()
        logger.info("Emulator disabled, using real Firestore.")

    def mock_firestore_for_tests(self):
        """Replace the underlying client with a :class:`unittest.mock.MagicMock`."""
        from unittest.mock import MagicMock

        self.client = MagicMock()
        logger.info("Firestore client replaced with MagicMock for unit tests.")
