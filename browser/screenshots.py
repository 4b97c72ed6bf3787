"""Optimized screenshot capture for a Playwright page."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

from remote.configuration import ImageOptimization

log = logging.getLogger(__name__)


def to_data_uri(raw: bytes, optimization: ImageOptimization) -> str:
    return f"data:{optimization.mime_type};base64,{base64.b64encode(raw).decode('ascii')}"


def capture_params(width: float, height: float, optimization: ImageOptimization) -> Dict[str, Any]:
    """``Page.captureScreenshot`` parameters that resize and compress in one pass."""
    target_width, _ = optimization.target_size(width, height)
    scale = target_width / width if width > 0 else 1.0
    params: Dict[str, Any] = {
        "format": "jpeg" if optimization.is_jpeg else "png",
        "clip": {"x": 0, "y": 0, "width": width, "height": height, "scale": scale},
        "captureBeyondViewport": False,
    }
    if optimization.is_jpeg:
        params["quality"] = int(round(optimization.quality * 100))
    return params


async def viewport_size(page: Any) -> Tuple[float, float]:
    size = page.viewport_size
    if size:
        return float(size["width"]), float(size["height"])
    metrics = await page.evaluate("() => ({ width: window.innerWidth, height: window.innerHeight })")
    return float(metrics.get("width") or 0), float(metrics.get("height") or 0)


async def capture_page(page: Any, optimization: ImageOptimization, logger: Any = None) -> Optional[str]:
    """
    Capture ``page`` as a data URI.

    Chromium's DevTools capture handles scaling and JPEG quality together.
    When no CDP session can be opened the plain Playwright screenshot is used
    at full viewport size.
    """
    logger = logger or log
    if page is None:
        return None
    try:
        return await _capture_with_cdp(page, optimization)
    except PlaywrightError as e:
        logger.debug("CDP screenshot unavailable, falling back: %s", e)

    try:
        kwargs: Dict[str, Any] = {"type": "jpeg" if optimization.is_jpeg else "png"}
        if optimization.is_jpeg:
            kwargs["quality"] = int(round(optimization.quality * 100))
        raw = await page.screenshot(**kwargs)
    except PlaywrightError as e:
        logger.warning("Screenshot capture failed: %s", e)
        return None
    return to_data_uri(raw, optimization)


async def _capture_with_cdp(page: Any, optimization: ImageOptimization) -> Optional[str]:
    width, height = await viewport_size(page)
    if width <= 0 or height <= 0:
        return None
    session = await page.context.new_cdp_session(page)
    try:
        result = await session.send("Page.captureScreenshot", capture_params(width, height, optimization))
    finally:
        try:
            await session.detach()
        except PlaywrightError:
            pass
    data = result.get("data") if isinstance(result, dict) else None
    if not data:
        return None
    return f"data:{optimization.mime_type};base64,{data}"
