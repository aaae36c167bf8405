from __future__ import annotations
import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from .models import Attribute, CatalogEntry


log = logging.getLogger(__name__)


@dataclass
class ShopifyConfig:
    store: str
    token: str
    api_version: str = "2024-07"
    timeout: float = 30.0
    max_retries: int = 5

    @property
    def base_url(self) -> str:
        return f"https://{self.store}/admin/api/{self.api_version}"


@dataclass
class ClientResult:
    success: bool
    data: object = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: object = None) -> "ClientResult":
        return cls(True, data=data)

    @classmethod
    def fail(cls, error: object) -> "ClientResult":
        return cls(False, error=str(error))


def build_session(cfg: ShopifyConfig) -> requests.Session:
    s = requests.Session()
    s.headers.update(
        {
            "X-Shopify-Access-Token": cfg.token,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "set-splitter/1.0",
        }
    )
    return s


def _request(
    session: requests.Session,
    method: str,
    url: str,
    payload: Optional[Dict] = None,
    timeout: float = 30.0,
    max_retries: int = 5,
) -> requests.Response:
    backoff = 1.0
    attempt = 0
    while True:
        data = json.dumps(payload) if payload is not None else None
        resp = session.request(method, url, data=data, timeout=timeout)
        if resp.status_code == 429 and attempt < max_retries:
            retry_after = float(resp.headers.get("Retry-After", backoff))
            log.debug(f"429 on {method} {url}; sleeping {retry_after}s")
            time.sleep(retry_after)
            backoff = min(backoff * 2, 10.0)
            attempt += 1
            continue
        return resp


def _error_detail(resp: requests.Response) -> str:
    try:
        detail = resp.json()
        detail = detail.get("errors", detail) if isinstance(detail, dict) else detail
    except ValueError:
        detail = resp.text
    return f"{resp.status_code}: {detail}"


class CatalogClient:
    """Catalog operations over the Shopify Admin REST API.

    Every method returns a ``ClientResult``; transport errors and non-2xx
    responses become ``success=False`` with the error text. Throttling (429) is
    retried here with Retry-After; nothing else is retried.
    """

    def __init__(self, cfg: ShopifyConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or build_session(cfg)

    def _call(self, method: str, path: str, payload: Optional[Dict] = None, url: Optional[str] = None):
        target = url or f"{self.cfg.base_url}{path}"
        try:
            resp = _request(
                self.session, method, target, payload,
                timeout=self.cfg.timeout, max_retries=self.cfg.max_retries,
            )
        except requests.RequestException as e:
            log.error(f"{method} {target} failed: {e}")
            return None, ClientResult.fail(e)
        if not resp.ok:
            detail = _error_detail(resp)
            log.error(f"{method} {target} returned {detail}")
            return resp, ClientResult.fail(detail)
        return resp, None

    def get_entry(self, entry_id, with_attributes: bool = True) -> ClientResult:
        resp, err = self._call("GET", f"/products/{entry_id}.json")
        if err:
            return err
        product = (resp.json() or {}).get("product") or {}
        if with_attributes:
            attrs = self.get_attributes(entry_id)
            if not attrs.success:
                return attrs
            product["metafields"] = attrs.data
        return ClientResult.ok(CatalogEntry.from_api(product))

    def get_attributes(self, entry_id) -> ClientResult:
        resp, err = self._call("GET", f"/products/{entry_id}/metafields.json")
        if err:
            return err
        return ClientResult.ok((resp.json() or {}).get("metafields") or [])

    def create_entry(self, draft: CatalogEntry) -> ClientResult:
        resp, err = self._call("POST", "/products.json", {"product": draft.to_api()})
        if err:
            return err
        product = (resp.json() or {}).get("product")
        if not product:
            return ClientResult.fail("create returned no product")
        return ClientResult.ok(CatalogEntry.from_api(product))

    def update_entry(self, entry_id, patch: Dict) -> ClientResult:
        body = dict(patch)
        body["id"] = entry_id
        resp, err = self._call("PUT", f"/products/{entry_id}.json", {"product": body})
        if err:
            return err
        return ClientResult.ok(CatalogEntry.from_api((resp.json() or {}).get("product") or {}))

    def list_entries(self, limit: int = 250) -> ClientResult:
        entries: List[CatalogEntry] = []
        url: Optional[str] = f"{self.cfg.base_url}/products.json?limit={int(limit)}"
        page = 0
        while url:
            page += 1
            resp, err = self._call("GET", "", url=url)
            if err:
                return err
            products = (resp.json() or {}).get("products") or []
            entries.extend(CatalogEntry.from_api(p) for p in products)
            log.debug(f"list_entries: page={page} count={len(products)}")
            url = (resp.links.get("next") or {}).get("url")
        return ClientResult.ok(entries)

    def set_attribute(self, entry_id, namespace: str, key: str, value: str, value_type: str = "json") -> ClientResult:
        payload = {"metafield": {"namespace": namespace, "key": key, "value": value, "type": value_type}}
        resp, err = self._call("POST", f"/products/{entry_id}/metafields.json", payload)
        if err:
            return err
        return ClientResult.ok(Attribute.from_api((resp.json() or {}).get("metafield") or {}))

    def delete_attribute(self, attribute_id) -> ClientResult:
        _, err = self._call("DELETE", f"/metafields/{attribute_id}.json")
        return err or ClientResult.ok()

    def delete_entry(self, entry_id) -> ClientResult:
        _, err = self._call("DELETE", f"/products/{entry_id}.json")
        return err or ClientResult.ok()

    def get_shop(self) -> ClientResult:
        """Fetch basic shop info to verify credentials and store identity."""
        resp, err = self._call("GET", "/shop.json")
        if err:
            return err
        return ClientResult.ok((resp.json() or {}).get("shop") or {})
