import asyncio
import base64
import io
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.remote.webdriver import WebDriver

from geodiag.platform.exceptions import NavigationError, RenderTimeout

logger = logging.getLogger(__name__)

DriverFactory = Callable[[], WebDriver]

_NETWORK_PROBE = (
    "return [document.readyState, performance.getEntriesByType('resource').length];"
)


@dataclass(frozen=True)
class RenderedPage:
    url: str
    final_url: str
    dom_html: str
    screenshot_bytes: bytes  # JPEG, first viewport only

    @property
    def screenshot_b64(self) -> str:
        return base64.b64encode(self.screenshot_bytes).decode() if self.screenshot_bytes else ""


def build_chrome_driver(
    width: int = 1280,
    height: int = 800,
    chromedriver_path: Optional[str] = None,
) -> webdriver.Chrome:
    chrome_options = Options()
    chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--disable-gpu")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--log-level=3")
    chrome_options.add_argument(f"--window-size={width},{height}")

    if chromedriver_path:
        driver_service = Service(executable_path=chromedriver_path)
        return webdriver.Chrome(service=driver_service, options=chrome_options)
    return webdriver.Chrome(options=chrome_options)


def compress_screenshot(png_bytes: bytes, max_width: int = 1280, quality: int = 80) -> bytes:
    """Re-encode a PNG screenshot as a bounded-size JPEG."""
    img = Image.open(io.BytesIO(png_bytes))

    w, h = img.size
    if w > max_width:
        ratio = max_width / w
        img = img.resize((max_width, int(h * ratio)), Image.LANCZOS)

    # JPEG has no alpha channel
    if img.mode == "RGBA":
        bg = Image.new("RGB", img.size, (255, 255, 255))
        bg.paste(img, mask=img.split()[3])
        img = bg
    elif img.mode != "RGB":
        img = img.convert("RGB")

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


class PageRenderer:
    """
    Loads a URL in a fresh headless browser and returns its DOM and a
    first-viewport screenshot.

    The whole render (navigation plus waiting for the network to go quiet)
    shares one deadline; running past it is a RenderTimeout, never a partial
    result. Selenium is blocking, so the work runs in a worker thread that
    always quits its driver, including when the awaiting task is cancelled.
    """

    def __init__(
        self,
        driver_factory: Optional[DriverFactory] = None,
        timeout: float = 30,
        idle_window: float = 0.5,
        poll_interval: float = 0.1,
        screenshot_quality: int = 80,
        max_screenshot_width: int = 1280,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver_factory = driver_factory or build_chrome_driver
        self.timeout = timeout
        self.idle_window = idle_window
        self.poll_interval = poll_interval
        self.screenshot_quality = screenshot_quality
        self.max_screenshot_width = max_screenshot_width
        self._clock = clock
        self._sleep = sleep

    async def render(self, url: str) -> RenderedPage:
        return await asyncio.to_thread(self._render_blocking, url)

    def _render_blocking(self, url: str) -> RenderedPage:
        deadline = self._clock() + self.timeout
        driver = None
        start_time = time.time()
        try:
            driver = self.driver_factory()
            driver.set_page_load_timeout(self.timeout)
            driver.get(url)
            self._wait_for_network_idle(driver, deadline)

            png = driver.get_screenshot_as_png()
            html = driver.page_source
            final_url = driver.current_url
            screenshot = compress_screenshot(
                png, max_width=self.max_screenshot_width, quality=self.screenshot_quality
            )
        except TimeoutException as e:
            raise RenderTimeout(f"Timeout loading {url}: {e.msg}") from e
        except WebDriverException as e:
            raise NavigationError(f"WebDriver error loading {url}: {e.msg}") from e
        except (OSError, ValueError) as e:
            # Pillow: UnidentifiedImageError is an OSError, bad modes are ValueError
            raise NavigationError(f"Unreadable screenshot for {url}: {e}") from e
        finally:
            if driver is not None:
                try:
                    driver.quit()
                except WebDriverException as e:
                    logger.warning(f"Failed to quit driver for {url}: {e.msg}")

        logger.info(f"Rendered {url} in {time.time() - start_time:.2f}s ({len(html)} bytes of HTML)")
        return RenderedPage(
            url=url,
            final_url=final_url,
            dom_html=html,
            screenshot_bytes=screenshot,
        )

    def _wait_for_network_idle(self, driver: WebDriver, deadline: float) -> None:
        """Block until the document is complete and no new resources load for `idle_window`."""
        last_count = -1
        last_change = self._clock()
        while True:
            now = self._clock()
            if now >= deadline:
                raise TimeoutException("network did not go idle before the deadline")

            ready_state, resource_count = driver.execute_script(_NETWORK_PROBE)
            if ready_state != "complete" or resource_count != last_count:
                last_count = resource_count
                last_change = now
            elif now - last_change >= self.idle_window:
                return

            self._sleep(self.poll_interval)
