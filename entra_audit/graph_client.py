"""
Microsoft Graph API client.

This module provides the HTTP client used by every audit: OAuth2 client
credentials authentication, SSL/truststore handling, JSON request/response
handling, transparent pagination and a tagged error hierarchy.
"""

import json
import ssl
import time
import logging
from typing import Dict, List, Any, Optional, Union
from urllib.parse import urlparse, urlencode, quote
from http.client import HTTPSConnection, HTTPConnection, HTTPException

from entra_audit.logging_setup import security_logger

logger = logging.getLogger(__name__)

# Seconds subtracted from the token lifetime so it is renewed before expiry
TOKEN_EXPIRY_BUFFER = 60


class GraphAPIError(Exception):
    """Base exception for Graph API errors."""

    kind = 'api_error'

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class GraphAuthenticationError(GraphAPIError):
    """Raised when an access token cannot be obtained."""
    kind = 'authentication'


class UnauthorizedError(GraphAPIError):
    """Raised on 401/403 responses."""
    kind = 'unauthorized'


class NotFoundError(GraphAPIError):
    """Raised when the requested directory object does not exist."""
    kind = 'not_found'


class TransientError(GraphAPIError):
    """Raised on throttling, server errors and connection faults."""
    kind = 'transient'


class MalformedResponseError(GraphAPIError):
    """Raised when a response body cannot be interpreted."""
    kind = 'malformed'


class GraphClient:
    """
    Client for the Microsoft Graph REST API.

    A single instance holds one HTTP connection and one bearer token for the
    duration of a run. It is not safe to share between threads.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Graph API client.

        Args:
            config: The 'graph' section of the configuration
        """
        self.config = config
        self.tenant_id = config['tenant_id']
        self.client_id = config['client_id']
        self.client_secret = config['client_secret']
        self.authority_url = config.get('authority_url', 'https://login.microsoftonline.com').rstrip('/')
        self.base_url = config.get('base_url', 'https://graph.microsoft.com/v1.0').rstrip('/')
        self.scope = config.get('scope', 'https://graph.microsoft.com/.default')
        self.verify_ssl = config.get('verify_ssl', True)
        self.timeout = config.get('timeout', 30)

        # Parse base URL
        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        # HTTP connection
        self.connection = None
        self.ssl_context = None

        # Authentication state
        self.access_token = None
        self._token_expires_at = 0.0

        self._setup_ssl_context()

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning("SSL verification disabled for Microsoft Graph")
            return

        self.ssl_context = ssl.create_default_context()

        truststore_file = self.config.get('truststore_file')
        if truststore_file:
            self._load_truststore(truststore_file)

    def _load_truststore(self, truststore_file: str):
        """Load custom CA certificates, e.g. for a TLS-inspecting proxy."""
        truststore_type = str(self.config.get('truststore_type', 'PEM')).upper()
        truststore_password = self.config.get('truststore_password')

        try:
            if truststore_type == 'PEM':
                self.ssl_context.load_verify_locations(cafile=truststore_file)

            elif truststore_type == 'PKCS12':
                from cryptography.hazmat.primitives import serialization
                from cryptography.hazmat.primitives.serialization import pkcs12

                with open(truststore_file, 'rb') as f:
                    p12_data = f.read()

                _, certificate, additional_certificates = pkcs12.load_key_and_certificates(
                    p12_data, truststore_password.encode() if truststore_password else None
                )

                ca_certs = []
                if certificate:
                    ca_certs.append(certificate.public_bytes(serialization.Encoding.PEM).decode('ascii'))
                for cert in (additional_certificates or []):
                    ca_certs.append(cert.public_bytes(serialization.Encoding.PEM).decode('ascii'))

                if not ca_certs:
                    raise GraphAPIError(f"No certificates found in PKCS12 truststore {truststore_file}")
                self.ssl_context.load_verify_locations(cadata='\n'.join(ca_certs))

            else:
                raise GraphAPIError(f"Unsupported truststore type: {truststore_type}")

            logger.info(f"Loaded {truststore_type} truststore: {truststore_file}")

        except GraphAPIError:
            raise
        except Exception as e:
            logger.error(f"Failed to load truststore {truststore_file}: {e}")
            raise GraphAPIError(f"Truststore loading failed: {e}")

    def _open_connection(self, scheme: str, netloc: str) -> Union[HTTPSConnection, HTTPConnection]:
        if scheme == 'https':
            return HTTPSConnection(netloc, context=self.ssl_context, timeout=self.timeout)
        return HTTPConnection(netloc, timeout=self.timeout)

    def _get_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        """Get or create the Graph HTTP connection."""
        if self.connection is None:
            self.connection = self._open_connection(self.parsed_url.scheme, self.host)
        return self.connection

    def authenticate(self) -> bool:
        """
        Obtain an access token using the OAuth2 client credentials flow.

        Returns:
            True once a token is held

        Raises:
            GraphAuthenticationError: If the token endpoint rejects the request
        """
        if self._is_token_valid():
            logger.debug("Graph access token still valid")
            return True

        token_url = urlparse(f"{self.authority_url}/{self.tenant_id}/oauth2/v2.0/token")
        token_body = urlencode({
            'grant_type': 'client_credentials',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'scope': self.scope
        })
        token_headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Accept': 'application/json'
        }

        token_conn = self._open_connection(token_url.scheme, token_url.netloc)
        try:
            logger.debug(f"Requesting Graph access token for tenant {self.tenant_id}")
            token_conn.request('POST', token_url.path, token_body, token_headers)
            response = token_conn.getresponse()
            response_data = response.read().decode('utf-8')
        except (OSError, HTTPException) as e:
            security_logger.log_authentication_attempt('graph', self.client_id, False)
            raise GraphAuthenticationError(f"Token request failed: {e}")
        finally:
            token_conn.close()

        if response.status != 200:
            security_logger.log_authentication_attempt('graph', self.client_id, False)
            raise GraphAuthenticationError(
                f"Token request failed: {response.status} {response.reason} "
                f"{self._error_message(response_data)}".rstrip(),
                status=response.status
            )

        try:
            token_response = json.loads(response_data)
        except json.JSONDecodeError as e:
            raise GraphAuthenticationError(f"Invalid JSON in token response: {e}")

        access_token = token_response.get('access_token')
        if not access_token:
            security_logger.log_authentication_attempt('graph', self.client_id, False)
            raise GraphAuthenticationError("Token response missing access_token")

        self.access_token = access_token
        expires_in = int(token_response.get('expires_in', 3600))
        self._token_expires_at = time.time() + expires_in - TOKEN_EXPIRY_BUFFER

        security_logger.log_authentication_attempt('graph', self.client_id, True)
        logger.info("Successfully obtained Graph access token")
        return True

    def _is_token_valid(self) -> bool:
        """Check if the access token is still valid."""
        return self.access_token is not None and time.time() < self._token_expires_at

    def _build_path(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        """Resolve a relative API path or an absolute continuation link to a request path."""
        if path.startswith('http://') or path.startswith('https://'):
            parsed = urlparse(path)
            if parsed.netloc != self.host:
                raise MalformedResponseError(f"Continuation link points to unexpected host: {parsed.netloc}")
            full_path = parsed.path + (f"?{parsed.query}" if parsed.query else '')
        else:
            full_path = f"{self.base_path}/{path.lstrip('/')}"

        if params:
            separator = '&' if '?' in full_path else '?'
            full_path += separator + urlencode(params, quote_via=quote, safe="$,'")
        return full_path

    def request(self, method: str, path: str, body: Optional[Dict] = None,
                params: Optional[Dict[str, Any]] = None,
                headers: Optional[Dict] = None) -> Dict[str, Any]:
        """
        Make an HTTP request to the Graph API.

        Args:
            method: HTTP method (GET, POST, DELETE)
            path: API path relative to base_url, or an absolute @odata.nextLink
            body: JSON request body
            params: Query string parameters
            headers: Additional headers

        Returns:
            Parsed JSON response ({} for empty bodies)

        Raises:
            GraphAPIError: Subclass matching the failure
        """
        if not self._is_token_valid():
            self.authenticate()

        full_path = self._build_path(path, params)

        request_headers = {
            'Authorization': f"Bearer {self.access_token}",
            'Accept': 'application/json'
        }
        if headers:
            request_headers.update(headers)

        request_body = None
        if body is not None:
            request_body = json.dumps(body)
            request_headers['Content-Type'] = 'application/json'

        try:
            conn = self._get_connection()
            logger.debug(f"Making {method} request to {self.host}{full_path}")
            conn.request(method, full_path, request_body, request_headers)
            response = conn.getresponse()
            raw = response.read()
        except (OSError, HTTPException) as e:
            # Drop the connection so the next request starts clean
            self.close_connection()
            raise TransientError(f"Connection error to Microsoft Graph: {e}")

        logger.debug(f"Response status: {response.status} {response.reason}")

        try:
            response_data = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedResponseError(f"Undecodable response from Microsoft Graph: {e}", status=response.status)

        if response.status >= 400:
            self._raise_for_status(response.status, response.reason, response_data)

        if not response_data:
            return {}

        try:
            return json.loads(response_data)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Invalid JSON response from Microsoft Graph: {e}", status=response.status)

    def _raise_for_status(self, status: int, reason: str, response_data: str):
        """Raise the tagged error matching an HTTP error status."""
        detail = self._error_message(response_data)
        message = f"HTTP {status}: {detail or reason}"

        if status in (401, 403):
            raise UnauthorizedError(message, status=status)
        if status == 404:
            raise NotFoundError(message, status=status)
        if status == 429 or status >= 500:
            raise TransientError(message, status=status)
        raise GraphAPIError(message, status=status)

    @staticmethod
    def _error_message(response_data: str) -> str:
        """Extract the message from a Graph error body, if there is one."""
        try:
            error = json.loads(response_data).get('error', {})
        except (ValueError, AttributeError):
            return ''
        if isinstance(error, dict):
            return error.get('message', '') or error.get('code', '')
        # Token endpoint errors use a flat body
        return str(error)

    def get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Fetch every item of a collection, following @odata.nextLink until exhausted.

        Returns:
            Concatenation of each page's 'value' list, in page order

        Raises:
            MalformedResponseError: If a page has no 'value' list
        """
        items = []
        url = path
        page_params = params
        pages = 0

        while url:
            data = self.request('GET', url, params=page_params)
            values = data.get('value') if isinstance(data, dict) else None
            if not isinstance(values, list):
                raise MalformedResponseError(f"Collection page {pages + 1} of {path} has no 'value' list")

            items.extend(values)
            pages += 1
            url = data.get('@odata.nextLink')
            # The continuation link already carries the original query
            page_params = None

        logger.debug(f"Fetched {len(items)} items from {path} in {pages} page(s)")
        return items

    def close_connection(self):
        """Close HTTP connection."""
        if self.connection:
            try:
                self.connection.close()
            except Exception as e:
                logger.warning(f"Error closing Graph connection: {e}")
            finally:
                self.connection = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close_connection()
