import asyncio
import io
from itertools import count
from unittest.mock import MagicMock

import pytest
from PIL import Image
from selenium.common.exceptions import TimeoutException, WebDriverException

from geodiag.features.diagnosis.services.page_renderer import (
    PageRenderer,
    RenderedPage,
    compress_screenshot,
)
from geodiag.platform.exceptions import NavigationError, RenderTimeout


def png_bytes(width=1600, height=900, mode="RGBA") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), (10, 120, 200, 255) if mode == "RGBA" else (10, 120, 200)).save(
        buf, format="PNG"
    )
    return buf.getvalue()


class FakeClock:
    """Monotonic clock that advances a fixed step each time it is read."""

    def __init__(self, step=0.1):
        self._ticks = count()
        self.step = step

    def __call__(self):
        return next(self._ticks) * self.step


class TestPageRenderer:
    @pytest.fixture
    def mock_driver(self):
        driver = MagicMock()
        driver.execute_script.return_value = ["complete", 4]
        driver.get_screenshot_as_png.return_value = png_bytes()
        driver.page_source = "<html><body><h1>Hi</h1></body></html>"
        driver.current_url = "https://example.com/final"
        return driver

    def make_renderer(self, driver, **kwargs):
        kwargs.setdefault("idle_window", 0.5)
        kwargs.setdefault("clock", FakeClock())
        kwargs.setdefault("sleep", lambda _: None)
        return PageRenderer(driver_factory=lambda: driver, **kwargs)

    async def test_render_returns_dom_and_jpeg(self, mock_driver):
        page = await self.make_renderer(mock_driver).render("https://example.com/")

        assert isinstance(page, RenderedPage)
        assert page.dom_html == "<html><body><h1>Hi</h1></body></html>"
        assert page.final_url == "https://example.com/final"
        assert page.screenshot_bytes[:2] == b"\xff\xd8"
        assert page.screenshot_b64
        mock_driver.get.assert_called_once_with("https://example.com/")
        mock_driver.quit.assert_called_once()

    async def test_waits_until_resource_count_settles(self, mock_driver):
        mock_driver.execute_script.side_effect = [
            ["loading", 0],
            ["complete", 3],
            ["complete", 5],
        ] + [["complete", 5]] * 20

        await self.make_renderer(mock_driver).render("https://example.com/")

        # 3 unsettled probes, then enough stable probes to cover the idle window
        assert mock_driver.execute_script.call_count > 3
        mock_driver.quit.assert_called_once()

    async def test_network_never_idle_is_a_timeout(self, mock_driver):
        counter = count()
        mock_driver.execute_script.side_effect = lambda _: ["complete", next(counter)]

        renderer = self.make_renderer(mock_driver, timeout=2)
        with pytest.raises(RenderTimeout):
            await renderer.render("https://example.com/")
        mock_driver.quit.assert_called_once()

    async def test_page_load_timeout(self, mock_driver):
        mock_driver.get.side_effect = TimeoutException("page load timed out")

        with pytest.raises(RenderTimeout):
            await self.make_renderer(mock_driver).render("https://example.com/")
        mock_driver.quit.assert_called_once()

    async def test_navigation_error(self, mock_driver):
        mock_driver.get.side_effect = WebDriverException("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(NavigationError):
            await self.make_renderer(mock_driver).render("https://nope.example/")
        mock_driver.quit.assert_called_once()

    async def test_corrupt_screenshot_is_a_navigation_error(self, mock_driver):
        mock_driver.get_screenshot_as_png.return_value = b"\x89PNG not really an image"

        with pytest.raises(NavigationError):
            await self.make_renderer(mock_driver).render("https://example.com/")
        mock_driver.quit.assert_called_once()

    async def test_driver_start_failure(self):
        def broken_factory():
            raise WebDriverException("chrome not found")

        renderer = PageRenderer(driver_factory=broken_factory)
        with pytest.raises(NavigationError):
            await renderer.render("https://example.com/")

    async def test_quit_failure_does_not_mask_result(self, mock_driver):
        mock_driver.quit.side_effect = WebDriverException("already gone")
        page = await self.make_renderer(mock_driver).render("https://example.com/")
        assert page.dom_html

    async def test_driver_released_when_caller_is_cancelled(self, mock_driver):
        release = asyncio.Event()
        loop = asyncio.get_running_loop()

        def slow_get(url):
            # Block the worker thread until the test lets it go
            asyncio.run_coroutine_threadsafe(release.wait(), loop).result(timeout=5)

        mock_driver.get.side_effect = slow_get
        renderer = self.make_renderer(mock_driver)

        task = asyncio.create_task(renderer.render("https://example.com/"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        release.set()
        for _ in range(100):
            if mock_driver.quit.called:
                break
            await asyncio.sleep(0.01)
        mock_driver.quit.assert_called_once()


class TestCompressScreenshot:
    def test_resizes_and_converts_to_jpeg(self):
        jpeg = compress_screenshot(png_bytes(2560, 1600), max_width=1280, quality=80)

        img = Image.open(io.BytesIO(jpeg))
        assert img.format == "JPEG"
        assert img.size == (1280, 800)
        assert img.mode == "RGB"

    def test_small_image_keeps_size(self):
        jpeg = compress_screenshot(png_bytes(800, 600, mode="RGB"))
        assert Image.open(io.BytesIO(jpeg)).size == (800, 600)
