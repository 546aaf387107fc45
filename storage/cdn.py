"""
Cloudflare Images Client
Upload and delete images on the Cloudflare Images CDN
"""
from typing import Any, BinaryIO, Dict, Optional
import json
import logging

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import CDNSettings, get_cdn_settings
from utils.exceptions import ConfigurationError, UploadError


logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudflare.com/client/v4/accounts/{account_id}/images/v1"
DELIVERY_BASE = "https://imagedelivery.net/{account_hash}/{image_id}/{variant}"


class CloudflareImagesClient:
    """
    Cloudflare Images API

    Credentials are read from settings and checked per call, so an
    unconfigured client can still be constructed and passed around.
    """

    def __init__(
        self,
        settings: Optional[CDNSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_cdn_settings()
        self._transport = transport

    @property
    def name(self) -> str:
        return "CloudflareImages"

    def is_configured(self) -> bool:
        return bool(self.settings.account_id and self.settings.api_token)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                "Cloudflare Images is not configured",
                {"env": ["CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN"]},
            )

    @property
    def base_url(self) -> str:
        return API_BASE.format(account_id=self.settings.account_id)

    def delivery_url(self, image_id: str, variant: str = "public") -> str:
        account_hash = self.settings.account_hash or self.settings.account_id
        return DELIVERY_BASE.format(account_hash=account_hash, image_id=image_id, variant=variant)

    def optimized_url(
        self,
        image_id: str,
        width: int = 800,
        height: int = 600,
        format: str = "webp",
        quality: int = 85,
        fit: str = "scale-down",
    ) -> str:
        """Flexible-variant URL with resize options"""
        return self.delivery_url(image_id, f"w={width},h={height},f={format},q={quality},fit={fit}")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout),
            headers={"Authorization": f"Bearer {self.settings.api_token}"},
            transport=self._transport,
        )

    async def upload(
        self,
        file: BinaryIO,
        *,
        filename: str = "image.jpg",
        image_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]:
        """
        Upload an open binary file.

        Returns:
            {"id": ..., "delivery_url": ...}; the first provider variant when
            one is returned, else the public delivery URL

        Raises:
            ConfigurationError: credentials missing
            UploadError: HTTP failure or an unsuccessful API response
        """
        self._require_configured()

        data: Dict[str, str] = {}
        if image_id:
            data["id"] = image_id
        if metadata:
            data["metadata"] = json.dumps(metadata, ensure_ascii=False)

        try:
            async with self._client() as client:
                response = await client.post(self.base_url, data=data, files={"file": (filename, file)})
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UploadError(f"Cloudflare upload failed: {exc}", {"image_id": image_id}) from exc

        if response.status_code >= 400 or not payload.get("success"):
            errors = payload.get("errors") or [{}]
            message = errors[0].get("message") if isinstance(errors[0], dict) else str(errors[0])
            raise UploadError(
                f"Cloudflare upload failed: {response.status_code} - {message or 'Unknown error'}",
                {"image_id": image_id},
            )

        result = payload.get("result") or {}
        cdn_id = str(result.get("id") or image_id or "")
        variants = result.get("variants") or []
        delivery = variants[0] if variants else self.delivery_url(cdn_id)
        logger.info(f"Uploaded image {cdn_id} to Cloudflare")
        return {"id": cdn_id, "delivery_url": delivery}

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _delete(self, image_id: str) -> httpx.Response:
        async with self._client() as client:
            return await client.delete(f"{self.base_url}/{image_id}")

    async def delete(self, image_id: str) -> bool:
        """Delete an image; False when the API refuses or is unreachable."""
        self._require_configured()
        try:
            response = await self._delete(image_id)
            return bool(response.json().get("success"))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Cloudflare delete failed for {image_id}: {exc}")
            return False
