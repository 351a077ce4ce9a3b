"""Download reference images and encode them as data URLs."""

import base64

import httpx

from batchrelay.services.exceptions import ImageFetchError

DEFAULT_IMAGE_MIME = "image/png"


async def fetch_data_url(http_client: httpx.AsyncClient, url: str) -> str:
    """Download an image and return it as ``data:<mime>;base64,<payload>``.

    Args:
        http_client: Shared async HTTP client
        url: HTTP/HTTPS URL of the image

    Returns:
        Data URL; the MIME type comes from Content-Type (image/png if absent)

    Raises:
        ImageFetchError: Non-2xx response or transport failure
    """
    try:
        response = await http_client.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        raise ImageFetchError(url, f"{type(e).__name__}: {e}") from e

    if not response.is_success:
        raise ImageFetchError(url, f"HTTP {response.status_code}")

    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    encoded = base64.b64encode(response.content).decode("ascii")
    return f"data:{content_type or DEFAULT_IMAGE_MIME};base64,{encoded}"
