#Purpose: The OSRM "adapter/client".
#Sole responsibility: talk to OSRM via HTTP and return normalized outputs.
#Encapsulates OSRM-specific details:
#coordinate formatting (lon,lat)
#URL construction (/route, /trip)
#timeouts and error handling
#parsing response JSON into your internal shape
#It should not contain dispatch rules or eligibility decisions.

from dotenv import load_dotenv
import logging
import os
from typing import List, Tuple, Dict, Any, Optional
import requests

# Read OSRM base URL from environment
# Example in .env:
# BASE_URL=http://router.project-osrm.org
load_dotenv()
BASE_URL = os.getenv("BASE_URL")

logger = logging.getLogger(__name__)

# Internal coordinate type: (lat, lon)
LatLon = Tuple[float, float]


class OSRMError(Exception):
    """Raised when OSRM is unreachable or answers with a non-Ok code."""
    pass


class OSRMClient:
    """
    OSRM Adapter / Client

    Sole responsibility:
    - Talk to OSRM via HTTP
    - Convert internal (lat, lon) → OSRM (lon,lat)
    - Return normalized outputs

    """
    def __init__(self, base_url: Optional[str] = None, profile: str = "driving", timeout: float = 5):
        self.base_url = (base_url or BASE_URL or "").rstrip("/")
        self.timeout = timeout #seconds to wait for OSRM before giving up
        self.profile = profile #the mode of transportation (driving, walking, cycling)

        if not self.base_url:
            raise ValueError("OSRM base URL not set. Please set BASE_URL in the .env file.")

    #----------------
    # Internal helpers
    #----------------
    def format_coordinates(self, coords: List[LatLon]) -> str:
        """Convert list of (lat, lon) to OSRM format 'lon,lat;lon,lat;...'"""
        return ';'.join([f"{lon},{lat}" for lat, lon in coords])

    def _get(self, service: str, coordinates: List[LatLon], params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{service}/v1/{self.profile}/{self.format_coordinates(coordinates)}"
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise OSRMError(f"OSRM {service} request failed: {exc}") from exc

        if data.get("code") != "Ok":
            raise OSRMError(f"OSRM error: {data.get('message', data.get('code', 'Unknown error'))}")
        return data

    @staticmethod
    def _first(data: Dict[str, Any], key: str) -> Dict[str, Any]:
        try:
            return data[key][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise OSRMError(f"OSRM answered Ok without {key}") from exc

    #----------------
    # Public methods
    #----------------
    def compute_route(self, coordinates: List[LatLon]) -> Dict[str, float]:
        """
        Calls the OSRM /route endpoint and returns distance and duration
        of the first route.

        Returns:
            {
                "distance": float, # in meters
                "duration": float, # in seconds
            }
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")

        data = self._get("route", coordinates, {"overview": "false"})
        route = self._first(data, "routes")

        return {
            "distance": route["distance"],
            "duration": route["duration"],
        }

    def compute_trip(self, coordinates: List[LatLon], *,
                     source_first: bool = True,
                     roundtrip: bool = False) -> Dict[str, Any]:
        """
        Calls the OSRM /trip endpoint (travelling-salesman ordering of the waypoints).

        Returns:
            {
                "distance": float,  # meters, whole trip
                "duration": float,  # seconds, whole trip
                "legs": [{"distance": float, "duration": float}, ...],
            }
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required to compute a trip.")

        params = {
            "roundtrip": "true" if roundtrip else "false",
            "source": "first" if source_first else "any",
            "overview": "false",
        }
        data = self._get("trip", coordinates, params)
        trip = self._first(data, "trips")

        return {
            "distance": trip["distance"],
            "duration": trip["duration"],
            "legs": [
                {"distance": leg["distance"], "duration": leg["duration"]}
                for leg in trip.get("legs", [])
            ],
        }
