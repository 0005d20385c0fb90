# fulfillment/services/catalog_client.py
import requests
from requests import RequestException

from fulfillment.domain.errors import CatalogUnavailable
from fulfillment.utils.retry import http_retry
from fulfillment.utils.settings import CATALOG_SERVICE_URL
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogClient:
    """
    Klient HTTP do catalog-service (tylko odczyt).

    fetch_product -> {"id", "price", "stock_quantity", "in_stock", "store_id", "name"}
    fetch_store   -> {"id", "owner_id", "latitude", "longitude", "is_active"}
    Zwraca None dla 404, inne bledy po retry -> CatalogUnavailable.
    """

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or CATALOG_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    def fetch_product(self, product_id: int) -> dict | None:
        return self._get(f"/products/{product_id}")

    def fetch_store(self, store_id: int) -> dict | None:
        return self._get(f"/stores/{store_id}")

    def _get(self, path: str) -> dict | None:
        try:
            return self._get_with_retry(path)
        except RequestException as e:
            logger.error(f"CatalogClient GET {path} failed: {e}")
            raise CatalogUnavailable(details={"path": path}) from e

    @http_retry()
    def _get_with_retry(self, path: str) -> dict | None:
        url = f"{self.base_url}{path}"
        logger.info(f"CatalogClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()
