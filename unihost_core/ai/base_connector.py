"""
Base API Connector Class for external HTTP services
Provides the shared session, auth and error mapping for connectors
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from dataclasses import dataclass

import requests

from unihost_core.errors import SuggestionServiceError, SuggestionUnavailableError


@dataclass
class APIConfig:
    """Configuration for API connection"""
    api_name: str
    base_url: str
    api_key: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    timeout: int = 30
    additional_params: Optional[Dict[str, Any]] = None


class BaseAPIConnector(ABC):
    """Abstract base class for all API connectors"""

    def __init__(self, config: APIConfig):
        self.config = config
        self.session = requests.Session()

        if config.headers:
            self.session.headers.update(config.headers)

        if config.api_key:
            self._set_auth_header()

    @abstractmethod
    def _set_auth_header(self):
        """Set authentication header based on API requirements"""
        pass

    def _make_request(
        self,
        endpoint: str,
        method: str = "POST",
        params: Optional[Dict] = None,
        data: Optional[Dict] = None
    ) -> requests.Response:
        """
        Make HTTP request with error mapping

        Raises:
            SuggestionUnavailableError: the service could not be reached
            SuggestionServiceError: the service answered with an error
        """
        url = f"{self.config.base_url.rstrip('/')}/{endpoint}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                timeout=self.config.timeout
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise SuggestionUnavailableError(
                f"{self.config.api_name} unreachable: {e}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise SuggestionServiceError(f"API request failed for {self.config.api_name}: {e}") from e

        if not response.ok:
            raise SuggestionServiceError(
                f"{self.config.api_name} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def close(self) -> None:
        self.session.close()
