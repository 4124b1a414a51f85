"""
NPM Registry API client.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

import env
from config import RegistryConfig
from errors import RegistryError, RegistryPayloadError
from models.dependency import package_scope
from models.identity import normalize_scope
from models.registry_package import RegistryPackage
from services.audit_logger import AuditLogger
from services.rate_limiter import TokenBucket

logger = logging.getLogger(__name__)


class NpmRegistryClient:
    """
    Client for the public npm registry.

    Blocking `requests` calls run in a worker thread. Every attempt is
    metered by the shared token bucket and reported to the audit logger.
    HTTP 429, 5xx and transport errors are retried with exponential backoff
    and jitter; 404 means "not found" and is returned as None; any other 4xx
    fails the call immediately.
    """

    BASE_URL = "https://registry.npmjs.org"
    TIMEOUT = 30
    SERVICE_NAME = "registry"

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        audit_logger: Optional[AuditLogger] = None,
        rate_limiter: Optional[TokenBucket] = None,
        timeout: float = TIMEOUT,
        max_attempts: int = 5,
        backoff_base: float = 0.5,
        backoff_factor: float = 2.0,
        jitter: float = 0.25,
        page_size: int = 250,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = (base_url or env.NPM_REGISTRY_URL or self.BASE_URL).rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Accept": "application/json", "User-Agent": "RunGhost/1.0"}
        )
        self._audit_logger = audit_logger
        self._rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.page_size = page_size
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        audit_logger: Optional[AuditLogger] = None,
        rate_limiter: Optional[TokenBucket] = None,
        session: Optional[requests.Session] = None,
    ) -> "NpmRegistryClient":
        return cls(
            base_url=config.url,
            session=session,
            audit_logger=audit_logger,
            rate_limiter=rate_limiter,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base_seconds,
            backoff_factor=config.backoff_factor,
            jitter=config.jitter,
            page_size=config.page_size,
        )

    async def list_scope(self, scope: str) -> List[str]:
        """
        List package names published under a scope.

        Pages through the search endpoint serially.

        Args:
            scope: npm scope, with or without the leading '@'

        Returns:
            Sorted full package names ('@acme/b')

        Raises:
            RegistryError: on transport/protocol failure after retries
        """
        normalized = normalize_scope(scope)
        names = set()
        offset = 0

        while True:
            query = urlencode({"text": normalized, "size": self.page_size, "from": offset})
            url = f"{self.base_url}/-/v1/search?{query}"
            data = await self._get_json(
                url, metadata={"scope": normalized, "searchType": "packages_by_scope"}
            )
            if data is None:
                break

            objects = data.get("objects") if isinstance(data, dict) else None
            if not isinstance(objects, list):
                raise RegistryPayloadError(f"Malformed search response for {normalized}", url=url)

            for item in objects:
                package = item.get("package") if isinstance(item, dict) else None
                name = package.get("name") if isinstance(package, dict) else None
                if isinstance(name, str) and name.startswith(normalized + "/"):
                    names.add(name)

            offset += len(objects)
            total = data.get("total")
            if len(objects) < self.page_size or (isinstance(total, int) and offset >= total):
                break

        logger.info("Scope %s lists %d packages", normalized, len(names))
        return sorted(names)

    async def describe(self, package_name: str) -> Optional[RegistryPackage]:
        """
        Fetch a package's packument and project it into a RegistryPackage.

        Args:
            package_name: npm package name (supports scoped packages)

        Returns:
            RegistryPackage, or None if the registry does not know the package

        Raises:
            RegistryPayloadError: if the payload has the wrong shape
            RegistryError: on transport/protocol failure after retries
        """
        # Handle scoped packages (@scope/name)
        encoded_name = package_name.replace("/", "%2F")
        url = f"{self.base_url}/{encoded_name}"

        data = await self._get_json(
            url, metadata={"packageName": package_name, "searchType": "package_metadata"}
        )
        if data is None:
            logger.info("Package not found on registry: %s", package_name)
            return None
        return self.parse_packument(data, package_name)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based), with +/- jitter."""
        delay = self.backoff_base * (self.backoff_factor ** (attempt - 1))
        return max(0.0, delay * (1 + self.jitter * (2 * random.random() - 1)))

    async def _get_json(self, url: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        last_error: Optional[RegistryError] = None

        for attempt in range(1, self.max_attempts + 1):
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire()

            started_at = datetime.now(timezone.utc)
            try:
                response = await asyncio.to_thread(self._send, url)
            except requests.RequestException as e:
                await self._audit(url, None, started_at, error=str(e), metadata=metadata, attempt=attempt)
                last_error = RegistryError(f"Request to {url} failed: {e}", url=url)
            else:
                status = response.status_code
                await self._audit(url, status, started_at, metadata=metadata, attempt=attempt)

                if status == 404:
                    return None
                if status < 400:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise RegistryPayloadError(f"Invalid JSON from {url}: {e}", url=url, status=status) from e
                if status != 429 and status < 500:
                    raise RegistryError(f"HTTP {status} from {url}", url=url, status=status)
                last_error = RegistryError(f"HTTP {status} from {url}", url=url, status=status)

            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Registry call failed (%s), retry %d/%d in %.2fs",
                    last_error, attempt, self.max_attempts - 1, delay,
                )
                await self._sleep(delay)

        raise last_error

    def _send(self, url: str) -> requests.Response:
        return self._session.get(url, timeout=self.timeout)

    async def _audit(
        self,
        url: str,
        status: Optional[int],
        started_at: datetime,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        attempt: int = 1,
    ) -> None:
        if self._audit_logger is None:
            return
        await self._audit_logger.log_request(
            service=self.SERVICE_NAME,
            method="GET",
            url=url,
            status=status,
            started_at=started_at,
            ended_at=datetime.now(timezone.utc),
            error=error,
            metadata={**(metadata or {}), "attempt": attempt},
        )

    @staticmethod
    def parse_packument(data: Any, package_name: str) -> RegistryPackage:
        """
        Project a raw packument into a RegistryPackage.

        Unknown fields are dropped; fields with the wrong type reject the
        whole package.

        Raises:
            RegistryPayloadError: on a wrongly typed field or no versions
        """
        def reject(reason: str) -> RegistryPayloadError:
            return RegistryPayloadError(f"Rejected registry payload for {package_name}: {reason}")

        if not isinstance(data, dict):
            raise reject("packument is not an object")

        name = data.get("name", package_name)
        if not isinstance(name, str):
            raise reject("name is not a string")

        dist_tags = data.get("dist-tags") or {}
        versions = data.get("versions") or {}
        times = data.get("time") or {}
        if not isinstance(dist_tags, dict) or not isinstance(versions, dict) or not isinstance(times, dict):
            raise reject("dist-tags/versions/time must be objects")

        latest = dist_tags.get("latest")
        if latest is None and versions:
            latest = list(versions.keys())[-1]
        if not isinstance(latest, str):
            raise reject("no published versions")

        version_data = versions.get(latest) or {}
        if not isinstance(version_data, dict):
            raise reject(f"version {latest} is not an object")

        dependencies = version_data.get("dependencies") or {}
        if not isinstance(dependencies, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in dependencies.items()
        ):
            raise reject("dependencies must map names to strings")

        description = data.get("description") or version_data.get("description")
        if description is not None and not isinstance(description, str):
            raise reject("description is not a string")

        maintainers_raw = data.get("maintainers") or version_data.get("maintainers") or []
        if not isinstance(maintainers_raw, list):
            raise reject("maintainers is not a list")
        maintainers: List[str] = []
        for maintainer in maintainers_raw:
            if isinstance(maintainer, dict) and isinstance(maintainer.get("name"), str):
                maintainers.append(maintainer["name"])
            elif isinstance(maintainer, str):
                maintainers.append(maintainer)
            else:
                raise reject("maintainer entry has no name")

        published_at = None
        timestamp = times.get(latest)
        if timestamp is not None:
            if not isinstance(timestamp, str):
                raise reject("publish time is not a string")
            try:
                published_at = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
            except ValueError:
                logger.debug("Unparseable publish time %r for %s", timestamp, package_name)

        license_raw = data.get("license") or version_data.get("license")
        if isinstance(license_raw, dict):
            license_raw = license_raw.get("type")
        license_name = license_raw if isinstance(license_raw, str) else None

        repository = data.get("repository") or version_data.get("repository")
        repository_url = repository.get("url") if isinstance(repository, dict) else repository
        if not isinstance(repository_url, str):
            repository_url = None

        return RegistryPackage(
            name=name,
            scope=package_scope(name) or "",
            latest_version=latest,
            description=description,
            published_at=published_at,
            maintainers=sorted(set(maintainers)),
            declared_dependencies=dependencies,
            license=license_name,
            repository_url=repository_url,
        )
