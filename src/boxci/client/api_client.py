# client/api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin


class APIError(Exception):
    """Raised when API requests fail."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class APIClient:
    """HTTP client for a running boxci server."""

    def __init__(self, base_url: str):
        """
        Initialize API client.

        Args:
            base_url: Base URL of the API (e.g., "http://localhost:4000")
        """
        # Ensure base_url doesn't end with /
        self.base_url = base_url.rstrip("/")

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
    ) -> Any:
        """
        Make an HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path (e.g., "/jobs")
            data: Optional JSON data to send in request body

        Returns:
            Parsed JSON response

        Raises:
            APIError: If the request fails
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(
            url,
            data=req_data,
            headers={"Content-Type": "application/json"},
            method=method,
        )

        try:
            with urllib.request.urlopen(req) as response:
                response_data = response.read().decode("utf-8")
                if response_data:
                    return json.loads(response_data)
                return {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise APIError(f"API request failed: {e.code} {e.reason}. {error_body}", status=e.code)
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    def create_job(self, project_id: int, branch: str) -> Dict[str, Any]:
        """Create a job; the server starts running it in the background."""
        return self._request("POST", "/jobs", data={"project_id": project_id, "branch": branch})

    def get_job(self, job_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/jobs/{job_id}")

    def get_logs(self, job_id: int) -> List[Dict[str, Any]]:
        return self._request("GET", f"/jobs/{job_id}/logs")
